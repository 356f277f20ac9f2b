"""
================================================================================
Suite Report Utilities
================================================================================

Persists and publishes suite results:
- JSON summary per suite (totals, pass rate, per-scenario outcome)
- Allure attachments for the summary and the failure report
- Allure HTML report generation through the allure CLI

================================================================================
"""

import json
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import allure
from loguru import logger

from .results import SuiteResult


# ================================================================================
# Attachment Helpers
# ================================================================================

def attach_json(data: Any, name: str = "Data"):
    """
    Attach JSON data to Allure report.

    Args:
        data: Data to attach (will be JSON serialized)
        name: Attachment name
    """
    allure.attach(
        json.dumps(data, indent=2, default=str),
        name=name,
        attachment_type=allure.attachment_type.JSON
    )


def attach_text(text: str, name: str = "Text"):
    """
    Attach text content to Allure report.

    Args:
        text: Text to attach
        name: Attachment name
    """
    allure.attach(
        text,
        name=name,
        attachment_type=allure.attachment_type.TEXT
    )


def attach_suite_result(result: SuiteResult) -> None:
    """Attach a suite's summary, and its failures if any, to the current test."""
    attach_json(result.to_dict(), name=f"Suite summary: {result.suite}")
    if not result.passed:
        attach_text(result.failure_report(), name=f"Suite failures: {result.suite}")


# ================================================================================
# Summary Files
# ================================================================================

def write_summary(result: SuiteResult, reports_dir: Union[str, Path]) -> Path:
    """
    Write ``<suite>-summary.json`` into the reports directory.

    Args:
        result: Suite result to persist
        reports_dir: Target directory (created if missing)

    Returns:
        Path of the written file
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)
    path = reports_dir / f"{result.suite}-summary.json"

    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, default=str)

    logger.info(f"Suite summary written: {path}")
    return path


def generate_allure_report(
    results_dir: Union[str, Path],
    reports_dir: Union[str, Path],
) -> Optional[Path]:
    """
    Generate a timestamped Allure HTML report and point ``allure-report`` at it.

    Args:
        results_dir: Allure results directory
        reports_dir: Directory receiving the HTML reports

    Returns:
        Report directory, or None when the allure CLI is unavailable or fails
    """
    reports_dir = Path(reports_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    report_path = reports_dir / f"allure-report-{timestamp}"

    try:
        subprocess.run([
            "allure", "generate",
            str(results_dir),
            "-o", str(report_path),
            "--clean"
        ], check=True)
    except FileNotFoundError:
        logger.warning("Allure CLI not found. Please install Allure to generate reports.")
        return None
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to generate Allure report: {e}")
        return None

    latest_link = reports_dir / "allure-report"
    if latest_link.is_symlink() or latest_link.is_file():
        latest_link.unlink()
    if not latest_link.exists():
        latest_link.symlink_to(report_path.name)

    logger.info(f"Report generated: {report_path}")
    return report_path


__all__ = [
    "attach_json",
    "attach_suite_result",
    "attach_text",
    "generate_allure_report",
    "write_summary",
]
