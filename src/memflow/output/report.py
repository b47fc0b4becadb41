"""
JSON report generation for MemFlow batch analyses.

A report records the settings used, summary counts, per-image group
membership and per-group aggregates, so a caller can render or audit a
grouping run without recomputing it.
"""

import json
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from ..analysis import BatchAnalysis
from ..config import Settings
from ..similarity.hash import fingerprint_to_hex
from ..logging import get_logger

logger = get_logger(__name__)

REPORT_VERSION = "1.0.0"


@dataclass(frozen=True)
class Report:
    """Complete report describing one batch analysis."""
    version: str                    # Report format version
    generated_at: str               # When the analysis was reported
    settings: Dict[str, Any]        # Threshold, algorithm, scoring variant
    summary: Dict[str, int]         # Summary counts
    images: list                    # Per-image entries
    groups: list                    # Per-group entries
    failures: list                  # Images excluded from grouping

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def build_report(analysis: BatchAnalysis, settings: Settings) -> Report:
    """
    Build a report from an analysis result.

    Args:
        analysis: Result of analyze_batch
        settings: Settings the analysis ran with

    Returns:
        Report object ready for serialization
    """
    payload = analysis.to_dict()
    for image in payload["images"]:
        image["fingerprintHex"] = fingerprint_to_hex(image["fingerprint"])

    grouped = sum(1 for group_id in analysis.grouping.assignments.values() if group_id is not None)
    total = len(analysis.grouping.assignments)
    summary = {
        "total_images": total,
        "grouped_images": grouped,
        "ungrouped_images": total - grouped,
        "group_count": len(analysis.grouping.groups),
        "failed_images": len(analysis.failures),
    }

    report = Report(
        version=REPORT_VERSION,
        generated_at=datetime.now().isoformat(),
        settings={
            "similarity_threshold": settings.similarity_threshold,
            "algorithm": settings.algorithm.value,
            "scores": "sharpened" if settings.sharpen else "raw",
        },
        summary=summary,
        images=payload["images"],
        groups=payload["groups"],
        failures=payload["failures"],
    )

    logger.info(f"Built report with {total} images in {summary['group_count']} groups")
    return report


def write_report_json(report: Report, out_path: Path) -> Path:
    """
    Write a report to a JSON file, creating parent directories.

    Args:
        report: Report to write
        out_path: Destination file

    Returns:
        Path to the written report
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(out_path, 'w', encoding='utf-8') as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Wrote report to {out_path}")
        return out_path

    except OSError as exc:
        logger.error(f"Failed to write report to {out_path}: {exc}")
        raise


def load_report_json(report_path: Path) -> Report:
    """Load a report previously written by write_report_json."""
    with open(report_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    report = Report(
        version=data["version"],
        generated_at=data["generated_at"],
        settings=data["settings"],
        summary=data["summary"],
        images=data["images"],
        groups=data["groups"],
        failures=data.get("failures", []),
    )
    logger.info(f"Loaded report from {report_path} with {len(report.images)} images")
    return report
