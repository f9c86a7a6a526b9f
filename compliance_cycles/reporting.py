"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from .models import ComplianceScore, MonthlyShortfall


logger = logging.getLogger(__name__)

BULK_SUMMARY_COLUMNS = [
    "institution_id",
    "as_of",
    "overall_score",
    "mentor_rate",
    "joining_letter_rate",
    "visit_rate",
    "report_rate",
    "missing_reports_last_month",
    "skipped_intervals",
    "status",
    "error",
]


def _fmt_rate(rate: Optional[float]) -> str:
    return "n/a" if rate is None else f"{rate:.1f}%"


def print_summary(
    institution_id: str,
    score: ComplianceScore,
    shortfall: Optional[MonthlyShortfall] = None,
) -> None:
    logger.info("=" * 60)
    logger.info("COMPLIANCE SUMMARY")
    logger.info("=" * 60)
    logger.info("Institution: %s", institution_id)
    logger.info("As of: %s", score.as_of)
    logger.info("-" * 60)
    logger.info("Overall score: %s", "n/a" if score.value is None else score.value)
    logger.info("Mentor rate: %s", _fmt_rate(score.components.get("mentor_rate")))
    logger.info("Joining letter rate: %s", _fmt_rate(score.components.get("joining_letter_rate")))
    logger.info("Visit rate (informational): %s", _fmt_rate(score.informational.get("visit_rate")))
    logger.info("Report rate (informational): %s", _fmt_rate(score.informational.get("report_rate")))
    if shortfall is not None:
        logger.info(
            "Missing reports %04d-%02d: %d of %d",
            shortfall.year,
            shortfall.month,
            shortfall.missing,
            shortfall.expected,
        )
    if score.skipped_intervals:
        logger.info("Skipped intervals: %d", score.skipped_intervals)
    logger.info("=" * 60)


def save_results_json(results: Dict, output_dir: Path, institution_id: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    results_file = output_dir / f"{institution_id}_results.json"
    with open(results_file, 'w') as f:
        json.dump(results, f, indent=2, default=str)
    return results_file


def export_trend_csv(trend: pd.DataFrame, output_dir: Path, institution_id: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    trend_file = output_dir / f"{institution_id}_trend.csv"
    trend.to_csv(trend_file, index=False)
    return trend_file


def export_worksheets(trends: Dict[str, pd.DataFrame], output_dir: Path, name: str) -> Path | None:
    """Write one trend sheet per institution into an Excel workbook."""
    if not trends:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    excel_file = output_dir / f"{name}_worksheets.xlsx"
    with pd.ExcelWriter(excel_file, engine='openpyxl') as writer:
        for institution_id, trend in trends.items():
            # Excel sheet names have a 31 character limit
            sheet_name = str(institution_id)[:31]
            trend.to_excel(writer, sheet_name=sheet_name, index=False)
    return excel_file


def export_bulk_summary_csv(rows: Iterable[Dict], output_dir: Path, name: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    summary_file = output_dir / f"{name}_bulk_results.csv"
    df = pd.DataFrame(list(rows), columns=BULK_SUMMARY_COLUMNS)
    df.to_csv(summary_file, index=False)
    return summary_file
