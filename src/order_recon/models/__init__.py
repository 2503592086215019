"""Data models for reconciliation."""

from .record import (
    OrderRecord,
    RecordOrigin,
    MalformedRecord,
    quantize_amount,
)
from .result import (
    MatchKind,
    ExactMatch,
    ProbableMatch,
    GroupedMatch,
    MidnightMatch,
    UnmatchedRecord,
    MatchResult,
    ReconciliationOutcome,
    ReconciliationSummary,
)

__all__ = [
    "OrderRecord",
    "RecordOrigin",
    "MalformedRecord",
    "quantize_amount",
    "MatchKind",
    "ExactMatch",
    "ProbableMatch",
    "GroupedMatch",
    "MidnightMatch",
    "UnmatchedRecord",
    "MatchResult",
    "ReconciliationOutcome",
    "ReconciliationSummary",
]
