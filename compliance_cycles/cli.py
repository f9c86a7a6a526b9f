"""
Command-line interface for the compliance engine.
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from tqdm import tqdm

from .aggregator import ComplianceAggregator, summarize_trend
from .cache import TaggedCache
from .cycle import CycleCalculator, REPORT_GRACE_DAYS, VISIT_GRACE_DAYS
from .repositories import HttpCountsRepository, load_csv_repository
from .reporting import (
    export_bulk_summary_csv,
    export_trend_csv,
    export_worksheets,
    print_summary,
    save_results_json,
)


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute internship compliance scores for institutions"
    )

    source = parser.add_argument_group("data source")
    source.add_argument("--counts-csv", help="CSV with one row of counts per institution")
    source.add_argument("--intervals-csv", help="CSV with one row per internship interval")
    source.add_argument("--reports-csv", help="CSV with submitted reports per month")
    source.add_argument("--api-url", help="Base URL of a compliance counts API")
    source.add_argument("--api-token", default=None, help="Bearer token for the API")

    parser.add_argument(
        "--institution",
        action="append",
        default=[],
        help="Institution to evaluate (repeatable). Default: all institutions in the CSV",
    )

    parser.add_argument(
        "--as-of",
        default=None,
        help="Evaluation date (YYYY-MM-DD). Default: today",
    )

    parser.add_argument(
        "--trend-months",
        type=int,
        default=6,
        help="Number of months in the compliance trend. Default: 6",
    )

    parser.add_argument(
        "--report-grace-days",
        type=int,
        default=REPORT_GRACE_DAYS,
        help=f"Days into the next month a report is due. Default: {REPORT_GRACE_DAYS}",
    )

    parser.add_argument(
        "--visit-grace-days",
        type=int,
        default=VISIT_GRACE_DAYS,
        help=f"Days into the next month a visit is due. Default: {VISIT_GRACE_DAYS}",
    )

    parser.add_argument(
        "--get-worksheets",
        action="store_true",
        help="Export trend dataframes to an Excel file with one sheet per institution",
    )

    parser.add_argument(
        "--output-dir",
        default="./output",
        help="Output directory for results. Default: ./output",
    )

    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.api_url:
        if not args.institution:
            parser.error("--institution is required with --api-url")
        repository = HttpCountsRepository(args.api_url, token=args.api_token)
        institution_ids = args.institution
    elif args.counts_csv and args.intervals_csv:
        repository = load_csv_repository(
            Path(args.counts_csv),
            Path(args.intervals_csv),
            Path(args.reports_csv) if args.reports_csv else None,
        )
        institution_ids = args.institution or repository.institution_ids()
    else:
        parser.error("either --api-url or both --counts-csv and --intervals-csv are required")

    if args.trend_months < 1:
        parser.error("--trend-months must be at least 1")

    if args.as_of:
        try:
            as_of = datetime.strptime(args.as_of, "%Y-%m-%d").date()
        except ValueError:
            print("Error: Invalid as-of format. Use YYYY-MM-DD", file=sys.stderr)
            sys.exit(1)
    else:
        as_of = datetime.now(timezone.utc).date()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    aggregator = ComplianceAggregator(
        repository,
        cache=TaggedCache(),
        calculator=CycleCalculator(
            report_grace_days=args.report_grace_days,
            visit_grace_days=args.visit_grace_days,
        ),
    )

    summary_rows = []
    trends = {}
    failures = 0
    for institution_id in tqdm(institution_ids, desc="Institutions", disable=len(institution_ids) < 2):
        try:
            score = aggregator.compute_institution_stats(institution_id, as_of)
            shortfall = aggregator.missing_reports_for_month(institution_id, as_of)
            trend = aggregator.compute_trend(institution_id, as_of, months=args.trend_months)
        except Exception as e:
            failures += 1
            logger.error("Error evaluating institution %s: %s", institution_id, e)
            summary_rows.append({
                "institution_id": institution_id,
                "as_of": as_of.isoformat(),
                "status": "error",
                "error": str(e),
            })
            continue

        trends[institution_id] = trend
        summary = summarize_trend(trend)
        print_summary(institution_id, score, shortfall)

        results = {
            "institution_id": institution_id,
            "score": score.to_dict(),
            "missing_reports_last_month": {
                "year": shortfall.year,
                "month": shortfall.month,
                "expected": shortfall.expected,
                "submitted": shortfall.submitted,
                "missing": shortfall.missing,
            },
            "trend": trend.to_dict(orient="records"),
            "trend_summary": {
                "average": summary.average,
                "best_month": summary.best_month,
                "worst_month": summary.worst_month,
            },
        }
        results_file = save_results_json(results, output_dir, institution_id)
        logger.info("Results saved to: %s", results_file)
        trend_file = export_trend_csv(trend, output_dir, institution_id)
        logger.info("Trend saved to: %s", trend_file)

        summary_rows.append({
            "institution_id": institution_id,
            "as_of": as_of.isoformat(),
            "overall_score": score.value,
            "mentor_rate": score.components.get("mentor_rate"),
            "joining_letter_rate": score.components.get("joining_letter_rate"),
            "visit_rate": score.informational.get("visit_rate"),
            "report_rate": score.informational.get("report_rate"),
            "missing_reports_last_month": shortfall.missing,
            "skipped_intervals": score.skipped_intervals,
            "status": "ok",
            "error": "",
        })

    run_name = f"compliance_{as_of.isoformat()}"
    summary_file = export_bulk_summary_csv(summary_rows, output_dir, run_name)
    logger.info("Summary saved to: %s", summary_file)

    if args.get_worksheets:
        excel_file = export_worksheets(trends, output_dir, run_name)
        if excel_file is not None:
            logger.info("Worksheets saved to: %s", excel_file)

    stats = aggregator.cache.stats()
    logger.debug("Cache hits=%d misses=%d size=%d", stats.hits, stats.misses, stats.size)

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
