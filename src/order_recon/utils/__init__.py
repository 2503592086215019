"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    MalformedRecordError,
    UnsupportedPlatformTypeError,
    RunTimeoutError,
    PartitionViolationError,
    ConfigurationError,
    FileReadError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "ReconciliationError",
    "MalformedRecordError",
    "UnsupportedPlatformTypeError",
    "RunTimeoutError",
    "PartitionViolationError",
    "ConfigurationError",
    "FileReadError",
    "ReportGenerationError",
    "setup_logging",
]
