"""
CountsRepository implementations.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
import requests

from .interfaces import CountsRepository
from .models import InstitutionCounts, ObligationInterval


logger = logging.getLogger(__name__)

COUNT_COLUMNS = [
    "active_students",
    "mentor_assignments",
    "joining_letters",
    "submitted_reports",
    "completed_visits",
]


class InMemoryCountsRepository(CountsRepository):
    """Repository backed by dictionaries.

    Filters are accepted for interface compatibility and ignored.
    """

    def __init__(self) -> None:
        self.counts: Dict[str, InstitutionCounts] = {}
        self.intervals: Dict[str, List[ObligationInterval]] = {}
        self.monthly_reports: Dict[Tuple[str, int, int], int] = {}

    def set_counts(self, institution_id: str, **values: int) -> InstitutionCounts:
        counts = InstitutionCounts(**values)
        self.counts[institution_id] = counts
        return counts

    def add_interval(
        self,
        institution_id: str,
        start: Any,
        end: Any = None,
        reference: Optional[str] = None,
    ) -> ObligationInterval:
        interval = ObligationInterval(start=start, end=end, reference=reference)
        self.intervals.setdefault(institution_id, []).append(interval)
        return interval

    def set_monthly_reports(self, institution_id: str, year: int, month: int, count: int) -> None:
        self.monthly_reports[(institution_id, year, month)] = count

    def institution_ids(self) -> List[str]:
        return sorted(set(self.counts) | set(self.intervals))

    def get_institution_counts(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> InstitutionCounts:
        return self.counts.get(institution_id, InstitutionCounts())

    def get_training_intervals(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> Iterable[ObligationInterval]:
        return list(self.intervals.get(institution_id, []))

    def count_reports_for_month(
        self, institution_id: str, year: int, month: int, **filters: Any
    ) -> int:
        return self.monthly_reports.get((institution_id, year, month), 0)


def _read_csv(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [column.strip() for column in df.columns]
    return df


def _require_columns(df: pd.DataFrame, columns: Iterable[str], path: Path) -> None:
    missing = [column for column in columns if column not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns: {', '.join(missing)}")


def load_csv_repository(
    counts_csv: Path,
    intervals_csv: Path,
    reports_csv: Optional[Path] = None,
) -> InMemoryCountsRepository:
    """Build an in-memory repository from CSV exports.

    Args:
        counts_csv: One row per institution with ``institution_id`` and the
            count columns; missing count columns default to 0
        intervals_csv: One row per internship with ``institution_id``,
            ``start_date`` and optional ``end_date`` and ``reference``
        reports_csv: Optional ``institution_id, year, month, submitted`` rows

    Returns:
        Populated InMemoryCountsRepository
    """
    repository = InMemoryCountsRepository()

    counts_df = _read_csv(Path(counts_csv))
    _require_columns(counts_df, ["institution_id"], counts_csv)
    for row in counts_df.to_dict(orient="records"):
        values = {
            column: int(row[column]) if str(row.get(column, "")).strip() else 0
            for column in COUNT_COLUMNS
            if column in row
        }
        repository.set_counts(str(row["institution_id"]).strip(), **values)

    intervals_df = _read_csv(Path(intervals_csv))
    _require_columns(intervals_df, ["institution_id", "start_date"], intervals_csv)
    for row in intervals_df.to_dict(orient="records"):
        # Raw values are kept so that bad dates are rejected, and counted, downstream.
        end = row.get("end_date", "").strip() or None
        repository.add_interval(
            str(row["institution_id"]).strip(),
            start=row["start_date"].strip(),
            end=end,
            reference=row.get("reference") or None,
        )

    if reports_csv is not None:
        reports_df = _read_csv(Path(reports_csv))
        _require_columns(
            reports_df, ["institution_id", "year", "month", "submitted"], reports_csv
        )
        for row in reports_df.to_dict(orient="records"):
            repository.set_monthly_reports(
                str(row["institution_id"]).strip(),
                int(row["year"]),
                int(row["month"]),
                int(row["submitted"]),
            )

    logger.info(
        "Loaded %d institutions and %d intervals from CSV",
        len(repository.counts),
        sum(len(items) for items in repository.intervals.values()),
    )
    return repository


class HttpCountsRepository(CountsRepository):
    """Repository reading counts from a JSON HTTP API."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        token: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("Fetching %s %s", url, params)
        with self.session.get(url, params=params, timeout=self.timeout) as response:
            response.raise_for_status()
            return response.json()

    def get_institution_counts(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> InstitutionCounts:
        data = self._get(
            f"institutions/{institution_id}/compliance-counts",
            {"asOf": as_of.isoformat(), **filters},
        )
        return InstitutionCounts(
            active_students=int(data.get("activeStudents", 0)),
            mentor_assignments=int(data.get("mentorAssignments", 0)),
            joining_letters=int(data.get("joiningLetters", 0)),
            submitted_reports=int(data.get("submittedReports", 0)),
            completed_visits=int(data.get("completedVisits", 0)),
        )

    def get_training_intervals(
        self, institution_id: str, as_of: date, **filters: Any
    ) -> Iterable[ObligationInterval]:
        data = self._get(
            f"institutions/{institution_id}/training-intervals",
            {"asOf": as_of.isoformat(), **filters},
        )
        return [
            ObligationInterval(
                start=item.get("startDate"),
                end=item.get("endDate") or None,
                reference=item.get("id"),
            )
            for item in data
        ]

    def count_reports_for_month(
        self, institution_id: str, year: int, month: int, **filters: Any
    ) -> int:
        data = self._get(
            f"institutions/{institution_id}/monthly-reports/count",
            {"year": year, "month": month, **filters},
        )
        return int(data.get("count", 0))
