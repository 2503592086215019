"""Input normalization for POS and platform exports."""

from .record_normalizer import RecordNormalizer, NormalizationReport
from .file_reader import read_export_file, read_export_files

__all__ = ["RecordNormalizer", "NormalizationReport", "read_export_file", "read_export_files"]
