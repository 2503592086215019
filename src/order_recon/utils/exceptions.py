"""Custom exceptions for the order reconciliation engine."""

from typing import Any, Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class MalformedRecordError(ReconciliationError):
    """A raw row has an unparsable amount or date."""

    pass


class UnsupportedPlatformTypeError(ReconciliationError):
    """Unknown platform tag, or a tag used on the wrong side."""

    def __init__(self, platform: str, side: Optional[str] = None):
        self.platform = platform
        self.side = side
        if side:
            message = f"Unsupported {side} platform type: {platform!r}"
        else:
            message = f"Unsupported platform type: {platform!r}"
        super().__init__(message)


class RunTimeoutError(ReconciliationError):
    """The run exceeded its configured time budget.

    ``partial`` holds the outcome assembled up to the point of expiry. It is
    diagnostic only and must never be reported as a successful result.
    """

    def __init__(self, message: str, partial: Any = None):
        super().__init__(message)
        self.partial = partial


class PartitionViolationError(ReconciliationError):
    """A record was consumed twice or dropped from the outcome."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class FileReadError(ReconciliationError):
    """Error reading an order export file."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating a results report."""

    pass
