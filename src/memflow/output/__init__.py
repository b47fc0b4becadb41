"""Report output for batch analyses."""

from .report import Report, build_report, load_report_json, write_report_json

__all__ = ["Report", "build_report", "load_report_json", "write_report_json"]
