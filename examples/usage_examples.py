#!/usr/bin/env python3
"""
Example script showing how to use the compliance-cycles library.
"""

from datetime import date

from compliance_cycles.aggregator import ComplianceAggregator, summarize_trend
from compliance_cycles.cache import TaggedCache
from compliance_cycles.cycle import CycleCalculator
from compliance_cycles.models import ObligationInterval
from compliance_cycles.repositories import InMemoryCountsRepository


def example_cycle_counts():
    """Example: Expected reports and visits for one internship."""
    print("="*60)
    print("Example 1: Cycle Counts")
    print("="*60)

    calculator = CycleCalculator()
    interval = ObligationInterval(start=date(2024, 1, 10), end=date(2024, 4, 15))
    now = date(2024, 3, 1)

    print(f"Total expected: {calculator.expected_total(interval)}")
    print(f"Visits due as of {now}: {calculator.expected_visits_as_of(interval, now)}")
    print(f"Reports due as of {now}: {calculator.expected_reports_as_of(interval, now)}")
    for obligation in calculator.obligations(interval, now, grace_days=calculator.report_grace_days):
        status = "due" if obligation.is_due else "pending"
        print(f"  {obligation.year}-{obligation.month:02d} report due {obligation.due_date} ({status})")


def example_institution_stats():
    """Example: Cached institution compliance score."""
    print("\n" + "="*60)
    print("Example 2: Institution Stats")
    print("="*60)

    repository = InMemoryCountsRepository()
    repository.set_counts(
        "42",
        active_students=120,
        mentor_assignments=110,
        joining_letters=90,
        submitted_reports=150,
        completed_visits=140,
    )
    repository.add_interval("42", date(2024, 1, 10), date(2024, 6, 30))
    repository.add_interval("42", date(2024, 2, 1))

    cache = TaggedCache(max_entries=500)
    aggregator = ComplianceAggregator(repository, cache=cache)

    score = aggregator.compute_institution_stats("42", date(2024, 3, 10))
    print(f"Overall score: {score.value}")
    print(f"Components: {score.components}")
    print(f"Informational: {score.informational}")

    trend = aggregator.compute_trend("42", date(2024, 3, 10), months=3)
    print(trend.to_string(index=False))
    summary = summarize_trend(trend)
    print(f"Average compliance: {summary.average}")

    # A mentor was reassigned: drop everything cached for institution 42
    removed = aggregator.invalidate_institution("42")
    print(f"Invalidated {removed} cached aggregates")
    print(f"Cache stats: {cache.stats()}")


if __name__ == "__main__":
    print("Compliance Cycles - Usage Examples")
    print("="*60)

    example_cycle_counts()
    example_institution_stats()
