"""
Core data models for compliance tracking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union


@dataclass(frozen=True)
class ObligationInterval:
    """Active window of one internship.

    ``start`` may hold the raw value supplied by a data source; the cycle
    calculator validates it. ``end`` of None means the internship is open.
    """

    start: Union[date, str, None]
    end: Union[date, str, None] = None
    reference: Optional[str] = None


@dataclass(frozen=True)
class CycleCount:
    """Expected obligations for one interval."""

    total_expected: int
    expected_as_of: int


@dataclass(frozen=True)
class MonthlyObligation:
    """One calendar month of obligations within an interval."""

    year: int
    month: int
    due_date: date
    is_due: bool
    is_first: bool
    is_final: bool


@dataclass(frozen=True)
class InstitutionCounts:
    """Raw counts supplied by a CountsRepository for one institution."""

    active_students: int = 0
    mentor_assignments: int = 0
    joining_letters: int = 0
    submitted_reports: int = 0
    completed_visits: int = 0


@dataclass(frozen=True)
class ComplianceScore:
    """Blended compliance score for an institution.

    ``value`` averages ``components`` only; ``informational`` rates are
    reported alongside and never folded into it.
    """

    value: Optional[int]
    components: Mapping[str, Optional[float]]
    informational: Mapping[str, Optional[float]] = field(default_factory=dict)
    counts: InstitutionCounts = field(default_factory=InstitutionCounts)
    expected_reports: int = 0
    expected_visits: int = 0
    skipped_intervals: int = 0
    as_of: Optional[date] = None

    def __post_init__(self):
        # Scores are shared between cache hits, so the rate maps are read-only views.
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))
        object.__setattr__(self, "informational", MappingProxyType(dict(self.informational)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "components": dict(self.components),
            "informational": dict(self.informational),
            "active_students": self.counts.active_students,
            "mentor_assignments": self.counts.mentor_assignments,
            "joining_letters": self.counts.joining_letters,
            "submitted_reports": self.counts.submitted_reports,
            "completed_visits": self.counts.completed_visits,
            "expected_reports": self.expected_reports,
            "expected_visits": self.expected_visits,
            "skipped_intervals": self.skipped_intervals,
            "as_of": self.as_of,
        }


@dataclass(frozen=True)
class MonthlyShortfall:
    """Reports owed versus submitted for a single calendar month."""

    year: int
    month: int
    expected: int
    submitted: int
    skipped_intervals: int = 0

    @property
    def missing(self) -> int:
        return max(self.expected - self.submitted, 0)


@dataclass(frozen=True)
class TrendSummary:
    """Summary over a compliance trend."""

    average: Optional[int]
    best_month: Optional[Dict[str, Any]]
    worst_month: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its expiry and tags."""

    key: str
    value: Any
    expires_at: float
    tags: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class CacheStats:
    """Counters describing cache activity."""

    hits: int
    misses: int
    evictions: int
    expirations: int
    invalidations: int
    size: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0
