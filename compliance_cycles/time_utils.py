"""
Shared date helpers for calendar-month arithmetic.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Iterator, Optional, Tuple, Union

DateLike = Union[date, datetime, str]


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """Parse a date, datetime or ISO 8601 string into a calendar date.

    Datetimes are normalized to UTC before the date is taken. Returns None
    for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed).date()


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(year: int, month: int, count: int) -> Tuple[int, int]:
    """Shift a (year, month) pair by ``count`` months."""
    index = year * 12 + (month - 1) + count
    return index // 12, index % 12 + 1


def months_between(start: date, end: date) -> int:
    """Number of calendar months touched by [start, end], inclusive."""
    if end < start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def iter_months(start: date, end: date) -> Iterator[Tuple[int, int]]:
    """Yield every (year, month) touched by [start, end] in order."""
    for offset in range(months_between(start, end)):
        yield add_months(start.year, start.month, offset)


def month_due_date(year: int, month: int, grace_days: int) -> date:
    """Due date of a monthly obligation for ``year``/``month``.

    With no grace the obligation is due on the month's last day; otherwise on
    day ``grace_days`` of the following month.
    """
    if grace_days <= 0:
        return last_day_of_month(year, month)
    next_year, next_month = add_months(year, month, 1)
    last = last_day_of_month(next_year, next_month).day
    return date(next_year, next_month, min(grace_days, last))
