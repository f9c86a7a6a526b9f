"""
Institution compliance scoring.

Combines raw counts from a CountsRepository with expected obligation counts
from the CycleCalculator, and memoizes the results in a TaggedCache tagged by
institution so that writes for one institution invalidate only its entries.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from datetime import date
from typing import Any, Dict, Iterable, Optional, Tuple

import pandas as pd

from .cache import TaggedCache
from .cycle import CycleCalculator
from .errors import InvalidIntervalError, StatsUnavailableError
from .interfaces import CountsRepository
from .models import ComplianceScore, MonthlyShortfall, ObligationInterval, TrendSummary
from .time_utils import DateLike, add_months, last_day_of_month, parse_date


logger = logging.getLogger(__name__)

DEFAULT_STATS_TTL = 300.0
STATS_TAG = "stats"

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

TREND_COLUMNS = [
    "year",
    "month",
    "month_name",
    "overall_score",
    "mentor_rate",
    "joining_letter_rate",
    "visit_rate",
    "report_rate",
    "active_students",
    "skipped_intervals",
]


def institution_tag(institution_id: str) -> str:
    return f"institution:{institution_id}"


def capped_rate(numerator: int, denominator: int) -> Optional[float]:
    """Percentage of ``numerator`` over ``denominator`` capped at 100.

    Returns None when there is nothing to divide by.
    """
    if denominator <= 0:
        return None
    return min(numerator / denominator, 1.0) * 100


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def blend(rates: Iterable[Optional[float]]) -> Optional[int]:
    """Rounded mean of the non-null rates, or None if all are null."""
    present = [rate for rate in rates if rate is not None]
    if not present:
        return None
    return round_half_up(sum(present) / len(present))


def params_hash(params: Dict[str, Any]) -> str:
    payload = json.dumps(params, sort_keys=True, default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12]


def summarize_trend(trend: pd.DataFrame) -> TrendSummary:
    """Average, best and worst months of a trend produced by compute_trend."""
    if trend.empty:
        return TrendSummary(average=None, best_month=None, worst_month=None)
    scores = pd.to_numeric(trend["overall_score"], errors="coerce").dropna()
    if scores.empty:
        return TrendSummary(average=None, best_month=None, worst_month=None)
    return TrendSummary(
        average=round_half_up(float(scores.mean())),
        best_month=trend.loc[[scores.idxmax()]].to_dict(orient="records")[0],
        worst_month=trend.loc[[scores.idxmin()]].to_dict(orient="records")[0],
    )


class ComplianceAggregator:
    """Compute cached compliance scores for institutions."""

    def __init__(
        self,
        repository: CountsRepository,
        cache: Optional[TaggedCache] = None,
        calculator: Optional[CycleCalculator] = None,
        ttl: float = DEFAULT_STATS_TTL,
    ):
        """Initialize the aggregator.

        Args:
            repository: Source of raw counts and internship intervals
            cache: Cache for computed aggregates (a private one if omitted)
            calculator: Cycle calculator (default grace days if omitted)
            ttl: Lifetime of cached aggregates in seconds
        """
        self.repository = repository
        self.cache = cache if cache is not None else TaggedCache()
        self.calculator = calculator if calculator is not None else CycleCalculator()
        self.ttl = ttl

    def compute_institution_stats(
        self,
        institution_id: str,
        as_of: DateLike,
        **filters: Any,
    ) -> ComplianceScore:
        """Compute the compliance score of an institution as of a date.

        Args:
            institution_id: Institution identifier
            as_of: Evaluation date
            **filters: Passed through to the repository and part of the cache key

        Returns:
            ComplianceScore whose value blends mentor and joining-letter rates

        Raises:
            StatsUnavailableError: The repository failed; nothing was cached
        """
        as_of_date = self._as_of_date(as_of)
        key = (
            f"compliance:stats:{institution_id}:{as_of_date.isoformat()}"
            f":{params_hash(filters)}"
        )
        return self._cached(
            institution_id,
            key,
            lambda: self._build_score(institution_id, as_of_date, filters),
        )

    def compute_trend(
        self,
        institution_id: str,
        as_of: DateLike,
        months: int = 6,
        **filters: Any,
    ) -> pd.DataFrame:
        """Score an institution at the end of each of the last ``months`` months.

        The current month is evaluated at ``as_of`` rather than its last day.
        """
        if months < 1:
            raise ValueError("months must be at least 1")
        as_of_date = self._as_of_date(as_of)
        rows = []
        for offset in range(months - 1, -1, -1):
            year, month = add_months(as_of_date.year, as_of_date.month, -offset)
            point = min(last_day_of_month(year, month), as_of_date)
            score = self.compute_institution_stats(institution_id, point, **filters)
            rows.append({
                "year": year,
                "month": month,
                "month_name": MONTH_NAMES[month - 1],
                "overall_score": score.value,
                "mentor_rate": score.components.get("mentor_rate"),
                "joining_letter_rate": score.components.get("joining_letter_rate"),
                "visit_rate": score.informational.get("visit_rate"),
                "report_rate": score.informational.get("report_rate"),
                "active_students": score.counts.active_students,
                "skipped_intervals": score.skipped_intervals,
            })
        return pd.DataFrame(rows, columns=TREND_COLUMNS)

    def missing_reports_for_month(
        self,
        institution_id: str,
        as_of: DateLike,
        year: Optional[int] = None,
        month: Optional[int] = None,
        **filters: Any,
    ) -> MonthlyShortfall:
        """Reports due but not submitted for one month (default: last month).

        The month is evaluated on its own: an interval owes a report only if
        it was active during that month and the report deadline has passed.
        """
        as_of_date = self._as_of_date(as_of)
        if year is None or month is None:
            year, month = add_months(as_of_date.year, as_of_date.month, -1)
        key = (
            f"compliance:shortfall:{institution_id}:{as_of_date.isoformat()}"
            f":{year:04d}-{month:02d}:{params_hash(filters)}"
        )

        def compute() -> MonthlyShortfall:
            intervals = self.repository.get_training_intervals(
                institution_id, as_of_date, **filters
            )
            expected = 0
            skipped = 0
            for interval in intervals:
                try:
                    expected += self.calculator.expected_in_month(
                        interval, year, month, as_of_date, self.calculator.report_grace_days
                    )
                except InvalidIntervalError as exc:
                    skipped += 1
                    logger.debug("Skipping interval %s: %s", interval.reference, exc)
            self._report_skipped(institution_id, skipped)
            submitted = self.repository.count_reports_for_month(
                institution_id, year, month, **filters
            )
            return MonthlyShortfall(
                year=year,
                month=month,
                expected=expected,
                submitted=submitted,
                skipped_intervals=skipped,
            )

        return self._cached(institution_id, key, compute)

    def invalidate_institution(self, institution_id: str) -> int:
        """Drop every cached aggregate for one institution."""
        return self.cache.invalidate_by_tags([institution_tag(institution_id)])

    def invalidate_stats(self) -> int:
        return self.cache.invalidate_by_tags([STATS_TAG])

    def _cached(self, institution_id: str, key: str, compute) -> Any:
        try:
            return self.cache.get_or_set(
                key,
                compute,
                ttl=self.ttl,
                tags={STATS_TAG, institution_tag(institution_id)},
            )
        except Exception as exc:
            logger.error("Failed to compute %s: %s", key, exc)
            raise StatsUnavailableError(institution_id, str(exc)) from exc

    def _build_score(
        self,
        institution_id: str,
        as_of: date,
        filters: Dict[str, Any],
    ) -> ComplianceScore:
        counts = self.repository.get_institution_counts(institution_id, as_of, **filters)
        intervals = self.repository.get_training_intervals(institution_id, as_of, **filters)
        expected_reports, expected_visits, skipped = self._expected_counts(intervals, as_of)
        self._report_skipped(institution_id, skipped)

        components = {
            "mentor_rate": capped_rate(counts.mentor_assignments, counts.active_students),
            "joining_letter_rate": capped_rate(counts.joining_letters, counts.active_students),
        }
        informational = {
            "visit_rate": capped_rate(counts.completed_visits, expected_visits),
            "report_rate": capped_rate(counts.submitted_reports, expected_reports),
        }
        score = ComplianceScore(
            value=blend(components.values()),
            components=components,
            informational=informational,
            counts=counts,
            expected_reports=expected_reports,
            expected_visits=expected_visits,
            skipped_intervals=skipped,
            as_of=as_of,
        )
        logger.debug("Computed score %s for institution %s as of %s", score.value, institution_id, as_of)
        return score

    def _expected_counts(
        self,
        intervals: Iterable[ObligationInterval],
        as_of: date,
    ) -> Tuple[int, int, int]:
        reports = 0
        visits = 0
        skipped = 0
        for interval in intervals:
            try:
                interval_reports = self.calculator.expected_reports_as_of(interval, as_of)
                interval_visits = self.calculator.expected_visits_as_of(interval, as_of)
            except InvalidIntervalError as exc:
                skipped += 1
                logger.debug("Skipping interval %s: %s", interval.reference, exc)
                continue
            reports += interval_reports
            visits += interval_visits
        return reports, visits, skipped

    @staticmethod
    def _report_skipped(institution_id: str, skipped: int) -> None:
        if skipped:
            logger.warning(
                "Skipped %d invalid internship intervals for institution %s",
                skipped,
                institution_id,
            )

    @staticmethod
    def _as_of_date(as_of: DateLike) -> date:
        as_of_date = parse_date(as_of)
        if as_of_date is None:
            raise ValueError(f"Invalid as-of date: {as_of!r}")
        return as_of_date
