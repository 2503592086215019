"""Canonical order record shared by the POS and platform sides."""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional

CENT = Decimal("0.01")


class RecordOrigin(Enum):
    """Which export a record came from."""

    POS = "pos"
    SOURCE = "source"


def quantize_amount(amount: Decimal) -> Decimal:
    """Round an amount to two places, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderRecord:
    """
    One order line from either side after normalization.

    Records are never mutated during a run; matchers only classify them.
    ``seq`` is the record's insertion position within its side and is the
    basis for every deterministic tie-break.
    """

    origin: RecordOrigin
    amount: Decimal
    date: date
    seq: int
    raw_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.amount.is_finite():
            raise ValueError(f"amount must be finite, got {self.amount}")
        if self.amount < 0:
            raise ValueError(f"amount must be non-negative, got {self.amount}")
        object.__setattr__(self, "amount", quantize_amount(self.amount))

    @property
    def key(self) -> tuple[RecordOrigin, int]:
        """Identity of the record within a run."""
        return self.origin, self.seq


@dataclass(frozen=True)
class MalformedRecord:
    """A raw row that could not be normalized."""

    origin: RecordOrigin
    row_index: int
    reason: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
