"""Result reports."""

from .excel_generator import ExcelReportGenerator
from .json_writer import build_envelope, dumps_outcome, write_json_report

__all__ = ["ExcelReportGenerator", "build_envelope", "dumps_outcome", "write_json_report"]
