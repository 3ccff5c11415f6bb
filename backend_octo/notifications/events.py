"""
Outbound notification events.

Presentation-only facts emitted by the ledger, the vitality state machine and
the listener. Delivery is fire-and-forget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from backend_octo.solana_listener.models import LAMPORTS_PER_SOL


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DonationAccepted:
    """A transfer was credited as HP."""

    signature: str
    amount: Decimal
    credit_amount: int
    counterparty: str
    at: datetime = field(default_factory=_now)

    kind = "donation_accepted"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "signature": self.signature,
            "amount_sol": str(self.amount),
            "credit_amount": self.credit_amount,
            "counterparty": self.counterparty,
            "at": self.at.isoformat(),
        }


@dataclass(frozen=True)
class PhaseChanged:
    """The vitality phase moved to a different bucket."""

    old_phase: str
    new_phase: str
    resource: int
    at: datetime = field(default_factory=_now)

    kind = "phase_changed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "old_phase": self.old_phase,
            "new_phase": self.new_phase,
            "resource": self.resource,
            "at": self.at.isoformat(),
        }


@dataclass(frozen=True)
class BalanceUpdated:
    """Wallet balance observed after a check."""

    lamports: int
    at: datetime = field(default_factory=_now)

    kind = "balance_updated"

    @property
    def balance_sol(self) -> Decimal:
        return Decimal(self.lamports) / Decimal(LAMPORTS_PER_SOL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "lamports": self.lamports,
            "balance_sol": str(self.balance_sol),
            "at": self.at.isoformat(),
        }


Event = DonationAccepted | PhaseChanged | BalanceUpdated
