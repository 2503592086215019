"""Amount tolerance policy shared by the looser matching stages."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..config import ToleranceConfig

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AmountTolerance:
    """
    Allowed absolute difference between a POS amount and a platform amount.

    The percentage bound is taken of the platform (source) amount. With
    ``combine="min"`` the tighter of the two bounds applies, with ``"max"``
    either bound is enough. Disabled bounds are ``None``; with both
    disabled only identical amounts qualify.
    """

    amount: Optional[Decimal] = Decimal("10")
    percent: Optional[Decimal] = Decimal("5")
    combine: str = "min"

    @classmethod
    def from_config(cls, config: ToleranceConfig) -> "AmountTolerance":
        return cls(
            amount=Decimal(str(config.amount)) if config.amount is not None else None,
            percent=Decimal(str(config.percent)) if config.percent is not None else None,
            combine=config.combine,
        )

    def limit(self, reference: Decimal) -> Decimal:
        """Largest accepted absolute difference for a given source amount."""
        bounds = []
        if self.amount is not None:
            bounds.append(self.amount)
        if self.percent is not None:
            bounds.append(abs(reference) * self.percent / HUNDRED)
        if not bounds:
            return Decimal("0")
        return min(bounds) if self.combine == "min" else max(bounds)

    def within(self, pos_amount: Decimal, source_amount: Decimal) -> bool:
        return abs(source_amount - pos_amount) <= self.limit(source_amount)
