"""
Monthly obligation counting for internship intervals.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Tuple

from .errors import InvalidIntervalError
from .models import CycleCount, MonthlyObligation, ObligationInterval
from .time_utils import (
    DateLike,
    iter_months,
    month_due_date,
    months_between,
    parse_date,
)

REPORT_GRACE_DAYS = 5
VISIT_GRACE_DAYS = 0
OPEN_INTERVAL_HORIZON_DAYS = 180


class CycleCalculator:
    """Count monthly reports and visits owed by an internship.

    One report and one visit are owed for every calendar month the interval
    touches. Reports and visits share the month-counting rule and differ only
    in how many days into the following month their deadline falls.
    """

    def __init__(
        self,
        report_grace_days: int = REPORT_GRACE_DAYS,
        visit_grace_days: int = VISIT_GRACE_DAYS,
        horizon_days: int = OPEN_INTERVAL_HORIZON_DAYS,
    ):
        """Initialize the calculator.

        Args:
            report_grace_days: Days into the following month a report is due
            visit_grace_days: Days into the following month a visit is due
            horizon_days: Assumed length of an interval with no end date
        """
        self.report_grace_days = report_grace_days
        self.visit_grace_days = visit_grace_days
        self.horizon_days = horizon_days

    def bounds(self, interval: ObligationInterval) -> Tuple[date, date]:
        """Validate an interval and return (start, effective_end).

        Raises:
            InvalidIntervalError: start is missing or unparseable, end is
                unparseable, or end precedes start
        """
        start = parse_date(interval.start)
        if start is None:
            raise InvalidIntervalError(
                f"Invalid start date: {interval.start!r}", interval
            )
        if interval.end is None or interval.end == "":
            return start, start + timedelta(days=self.horizon_days)
        end = parse_date(interval.end)
        if end is None:
            raise InvalidIntervalError(f"Invalid end date: {interval.end!r}", interval)
        if end < start:
            raise InvalidIntervalError(
                f"End date {end.isoformat()} precedes start date {start.isoformat()}",
                interval,
            )
        return start, end

    def expected_total(self, interval: ObligationInterval) -> int:
        """Number of calendar months covered by the interval."""
        start, end = self.bounds(interval)
        return months_between(start, end)

    def expected_as_of(
        self,
        interval: ObligationInterval,
        now: DateLike,
        grace_days: int = 0,
    ) -> int:
        """Number of in-scope months whose deadline has passed by ``now``."""
        start, end = self.bounds(interval)
        today = self._today(now)
        if start > today:
            return 0
        return sum(
            1
            for year, month in iter_months(start, end)
            if today > month_due_date(year, month, grace_days)
        )

    def expected_as_of_today(self, interval: ObligationInterval, now: DateLike) -> int:
        """Obligations that should already exist as of ``now``.

        A month counts once it has fully elapsed.
        """
        return self.expected_as_of(interval, now, grace_days=0)

    def expected_reports_as_of(self, interval: ObligationInterval, now: DateLike) -> int:
        return self.expected_as_of(interval, now, grace_days=self.report_grace_days)

    def expected_visits_as_of(self, interval: ObligationInterval, now: DateLike) -> int:
        return self.expected_as_of(interval, now, grace_days=self.visit_grace_days)

    def count(
        self,
        interval: ObligationInterval,
        now: DateLike,
        grace_days: int = 0,
    ) -> CycleCount:
        return CycleCount(
            total_expected=self.expected_total(interval),
            expected_as_of=self.expected_as_of(interval, now, grace_days),
        )

    def obligations(
        self,
        interval: ObligationInterval,
        now: DateLike,
        grace_days: int = 0,
    ) -> List[MonthlyObligation]:
        """List every month of the interval with its due date and status."""
        start, end = self.bounds(interval)
        today = self._today(now)
        months = list(iter_months(start, end))
        result = []
        for index, (year, month) in enumerate(months):
            due_date = month_due_date(year, month, grace_days)
            result.append(
                MonthlyObligation(
                    year=year,
                    month=month,
                    due_date=due_date,
                    is_due=start <= today and today > due_date,
                    is_first=index == 0,
                    is_final=index == len(months) - 1,
                )
            )
        return result

    def expected_in_month(
        self,
        interval: ObligationInterval,
        year: int,
        month: int,
        now: DateLike,
        grace_days: int = 0,
    ) -> int:
        """Return 1 if the interval owes an obligation for ``year``/``month``
        that is due by ``now``, else 0.
        """
        start, end = self.bounds(interval)
        today = self._today(now)
        if start > today:
            return 0
        if (year, month) < (start.year, start.month) or (year, month) > (end.year, end.month):
            return 0
        return 1 if today > month_due_date(year, month, grace_days) else 0

    @staticmethod
    def _today(now: DateLike) -> date:
        today = parse_date(now)
        if today is None:
            raise ValueError(f"Invalid evaluation date: {now!r}")
        return today
