"""
Interfaces for compliance data sources.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol

from .models import InstitutionCounts, ObligationInterval


class CountsRepository(Protocol):
    """Supply raw counts and internship intervals for an institution.

    Keyword filters (for example a batch or branch) are passed through from
    the aggregator unchanged.
    """

    def get_institution_counts(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> InstitutionCounts:
        ...

    def get_training_intervals(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> Iterable[ObligationInterval]:
        ...

    def count_reports_for_month(
        self, institution_id: str, year: int, month: int, **filters: Any
    ) -> int:
        ...
