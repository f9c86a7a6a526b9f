"""Tests for CountsRepository implementations."""

from datetime import date
from pathlib import Path

import pytest
import requests

from compliance_cycles.aggregator import ComplianceAggregator
from compliance_cycles.models import InstitutionCounts, ObligationInterval
from compliance_cycles.repositories import HttpCountsRepository, load_csv_repository


def write_csvs(tmp_path: Path):
    counts_csv = tmp_path / "counts.csv"
    counts_csv.write_text(
        "institution_id,active_students,mentor_assignments,joining_letters,submitted_reports,completed_visits\n"
        "42,10,8,5,3,4\n"
        "7,0,0,0,,\n",
        encoding="utf-8",
    )
    intervals_csv = tmp_path / "intervals.csv"
    intervals_csv.write_text(
        "institution_id,start_date,end_date,reference\n"
        "42,2024-01-10,2024-04-15,app-1\n"
        "42,2024-02-01,,app-2\n"
        "42,31/02/2024,,app-3\n",
        encoding="utf-8",
    )
    reports_csv = tmp_path / "reports.csv"
    reports_csv.write_text(
        "institution_id,year,month,submitted\n"
        "42,2024,2,1\n",
        encoding="utf-8",
    )
    return counts_csv, intervals_csv, reports_csv


def test_load_csv_repository(tmp_path: Path) -> None:
    repo = load_csv_repository(*write_csvs(tmp_path))

    assert repo.institution_ids() == ["42", "7"]
    assert repo.get_institution_counts("42", date(2024, 3, 10)) == InstitutionCounts(10, 8, 5, 3, 4)
    assert repo.get_institution_counts("7", date(2024, 3, 10)) == InstitutionCounts()
    intervals = list(repo.get_training_intervals("42", date(2024, 3, 10)))
    assert intervals[0] == ObligationInterval("2024-01-10", "2024-04-15", "app-1")
    assert intervals[1].end is None
    assert intervals[2].start == "31/02/2024"
    assert repo.count_reports_for_month("42", 2024, 2) == 1
    assert repo.count_reports_for_month("42", 2024, 1) == 0


def test_csv_repository_feeds_aggregator(tmp_path: Path) -> None:
    repo = load_csv_repository(*write_csvs(tmp_path))
    aggregator = ComplianceAggregator(repo)

    score = aggregator.compute_institution_stats("42", date(2024, 3, 10))

    assert score.value == 65
    assert score.skipped_intervals == 1
    assert score.expected_reports == 3


def test_load_csv_requires_columns(tmp_path: Path) -> None:
    counts_csv, _, _ = write_csvs(tmp_path)
    intervals_csv = tmp_path / "bad.csv"
    intervals_csv.write_text("institution_id,end_date\n42,2024-01-01\n", encoding="utf-8")

    with pytest.raises(ValueError, match="start_date"):
        load_csv_repository(counts_csv, intervals_csv)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self.headers = {}

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return self.routes[url]


def test_http_repository_maps_payloads():
    base = "https://api.example.test/v1"
    session = FakeSession({
        f"{base}/institutions/42/compliance-counts": FakeResponse({
            "activeStudents": 10,
            "mentorAssignments": 8,
            "joiningLetters": 5,
            "submittedReports": 3,
            "completedVisits": 4,
        }),
        f"{base}/institutions/42/training-intervals": FakeResponse([
            {"id": "app-1", "startDate": "2024-01-10", "endDate": "2024-04-15"},
            {"id": "app-2", "startDate": "2024-02-01", "endDate": None},
        ]),
        f"{base}/institutions/42/monthly-reports/count": FakeResponse({"count": 2}),
    })
    repo = HttpCountsRepository(base + "/", session=session, timeout=5, token="secret")

    counts = repo.get_institution_counts("42", date(2024, 3, 10), batch="2024")
    intervals = repo.get_training_intervals("42", date(2024, 3, 10))
    reports = repo.count_reports_for_month("42", 2024, 2, batch="2024")

    assert counts == InstitutionCounts(10, 8, 5, 3, 4)
    assert intervals[1] == ObligationInterval("2024-02-01", None, "app-2")
    assert reports == 2
    assert session.headers["Authorization"] == "Bearer secret"
    assert session.calls[0][1] == {"asOf": "2024-03-10", "batch": "2024"}
    assert session.calls[0][2] == 5
    assert session.calls[2][1] == {"year": 2024, "month": 2, "batch": "2024"}


def test_http_repository_errors_propagate():
    base = "https://api.example.test"
    session = FakeSession({
        f"{base}/institutions/42/compliance-counts": FakeResponse({}, status_code=503),
    })
    repo = HttpCountsRepository(base, session=session)

    with pytest.raises(requests.HTTPError):
        repo.get_institution_counts("42", date(2024, 3, 10))
