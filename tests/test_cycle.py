"""Tests for monthly obligation counting."""

from datetime import date, datetime, timedelta, timezone

import pytest

from compliance_cycles.cycle import CycleCalculator
from compliance_cycles.errors import InvalidIntervalError
from compliance_cycles.models import ObligationInterval


@pytest.fixture
def calculator():
    return CycleCalculator()


def test_bounded_interval_scenario(calculator):
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 4, 15))

    assert calculator.expected_total(interval) == 4
    assert calculator.expected_as_of_today(interval, date(2024, 3, 1)) == 2


def test_report_grace_delays_previous_month(calculator):
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 4, 15))

    # February's report is due on March 5th.
    assert calculator.expected_reports_as_of(interval, date(2024, 3, 1)) == 1
    assert calculator.expected_reports_as_of(interval, date(2024, 3, 5)) == 1
    assert calculator.expected_reports_as_of(interval, date(2024, 3, 6)) == 2
    assert calculator.expected_visits_as_of(interval, date(2024, 3, 1)) == 2


def test_same_day_interval_counts_one(calculator):
    interval = ObligationInterval(start=date(2024, 5, 20), end=date(2024, 5, 20))

    assert calculator.expected_total(interval) == 1
    assert calculator.expected_as_of_today(interval, date(2024, 5, 31)) == 0
    assert calculator.expected_as_of_today(interval, date(2024, 6, 1)) == 1


def test_open_interval_uses_180_day_horizon(calculator):
    interval = ObligationInterval(start=date(2024, 1, 10))

    # 2024-01-10 + 180 days = 2024-07-08
    assert calculator.bounds(interval) == (date(2024, 1, 10), date(2024, 7, 8))
    assert calculator.expected_total(interval) == 7
    assert interval.end is None


def test_future_start_expects_nothing(calculator):
    interval = ObligationInterval(start=date(2024, 6, 1), end=date(2024, 9, 30))

    assert calculator.expected_as_of_today(interval, date(2024, 5, 31)) == 0
    assert calculator.expected_reports_as_of(interval, date(2024, 1, 1)) == 0


def test_as_of_never_exceeds_total(calculator):
    start = date(2023, 11, 28)
    for length in (0, 1, 3, 30, 31, 95, 200):
        interval = ObligationInterval(start=start, end=start + timedelta(days=length))
        total = calculator.expected_total(interval)
        for days_after in range(-10, 400, 7):
            now = start + timedelta(days=days_after)
            for grace in (0, 5):
                assert calculator.expected_as_of(interval, now, grace) <= total


def test_interval_finished_long_ago_is_fully_due(calculator):
    interval = ObligationInterval(start=date(2023, 1, 15), end=date(2023, 3, 10))

    count = calculator.count(interval, date(2024, 1, 1), grace_days=5)

    assert count.total_expected == 3
    assert count.expected_as_of == 3


def test_accepts_strings_and_datetimes(calculator):
    interval = ObligationInterval(start="2024-01-10", end="2024-04-15T12:00:00Z")
    now = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    assert calculator.expected_total(interval) == 4
    assert calculator.expected_as_of_today(interval, now) == 2


@pytest.mark.parametrize("start", [None, "", "not-a-date", "2024-02-30"])
def test_invalid_start_raises(calculator, start):
    with pytest.raises(InvalidIntervalError):
        calculator.expected_total(ObligationInterval(start=start))


def test_end_before_start_raises(calculator):
    interval = ObligationInterval(start=date(2024, 5, 1), end=date(2024, 4, 1))

    with pytest.raises(InvalidIntervalError) as excinfo:
        calculator.expected_as_of_today(interval, date(2024, 6, 1))

    assert excinfo.value.interval is interval
    assert isinstance(excinfo.value, ValueError)


def test_obligations_list_due_dates(calculator):
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 3, 15))

    obligations = calculator.obligations(interval, date(2024, 2, 10), grace_days=5)

    assert [(o.year, o.month) for o in obligations] == [(2024, 1), (2024, 2), (2024, 3)]
    assert [o.due_date for o in obligations] == [
        date(2024, 2, 5),
        date(2024, 3, 5),
        date(2024, 4, 5),
    ]
    assert [o.is_due for o in obligations] == [True, False, False]
    assert obligations[0].is_first and not obligations[0].is_final
    assert obligations[-1].is_final


def test_obligations_cross_year_boundary(calculator):
    interval = ObligationInterval(start=date(2023, 12, 15), end=date(2024, 1, 20))

    obligations = calculator.obligations(interval, date(2024, 2, 1))

    assert [(o.year, o.month) for o in obligations] == [(2023, 12), (2024, 1)]
    assert obligations[0].due_date == date(2023, 12, 31)
    assert all(o.is_due for o in obligations)


def test_expected_in_month_evaluates_single_month(calculator):
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 4, 15))
    now = date(2024, 3, 10)

    assert calculator.expected_in_month(interval, 2024, 2, now, grace_days=5) == 1
    assert calculator.expected_in_month(interval, 2024, 3, now, grace_days=5) == 0
    assert calculator.expected_in_month(interval, 2023, 12, now, grace_days=5) == 0
    assert calculator.expected_in_month(interval, 2024, 2, date(2024, 3, 4), grace_days=5) == 0


def test_custom_grace_days():
    calculator = CycleCalculator(report_grace_days=10, visit_grace_days=3)
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 4, 15))

    assert calculator.expected_reports_as_of(interval, date(2024, 2, 10)) == 0
    assert calculator.expected_reports_as_of(interval, date(2024, 2, 11)) == 1
    assert calculator.expected_visits_as_of(interval, date(2024, 2, 3)) == 0
    assert calculator.expected_visits_as_of(interval, date(2024, 2, 4)) == 1
