"""
Exchange rule: SOL amount → HP credit units.

One HP per `rate` SOL, floored; amounts below `minimum` earn nothing.
Canonical rule: 0.01 SOL = 1 HP = 1 minute of life.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal


@dataclass(frozen=True)
class ExchangeRule:
    rate: Decimal = Decimal("0.01")
    minimum: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        if self.minimum < 0:
            raise ValueError("minimum must be non-negative")

    def credits_for(self, amount: Decimal) -> int:
        if amount < self.minimum or amount <= 0:
            return 0
        return int((amount / self.rate).to_integral_value(rounding=ROUND_FLOOR))

    def table(self, credits: tuple[int, ...] = (1, 5, 10, 25, 50, 100)) -> list[dict[str, str | int]]:
        """Donation table for display: SOL needed for each HP amount."""
        return [{"sol": str(self.rate * c), "hp": c} for c in credits]
