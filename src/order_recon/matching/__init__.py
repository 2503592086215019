"""Matching engine and strategies."""

from .engine import ReconciliationEngine
from .pool import RecordPool
from .tolerance import AmountTolerance
from .context import RunContext
from .strategies import (
    MatchingStrategy,
    ExactMatchStrategy,
    ProbableMatchStrategy,
    GroupedMatchStrategy,
    MidnightMatchStrategy,
)

__all__ = [
    "ReconciliationEngine",
    "RecordPool",
    "AmountTolerance",
    "RunContext",
    "MatchingStrategy",
    "ExactMatchStrategy",
    "ProbableMatchStrategy",
    "GroupedMatchStrategy",
    "MidnightMatchStrategy",
]
