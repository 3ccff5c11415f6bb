"""
Domain models for database entities.

Processed-signature markers (append-only) and the persisted vitality row.
No ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from backend_octo.solana_listener.models import IncomingTransfer


@dataclass(frozen=True)
class ProcessedSignatureRecord:
    """Written exactly once per accepted transfer; its presence means 'already credited'."""

    signature: str
    amount_sol: Decimal
    amount_lamports: int
    credit_amount: int
    """HP granted; 0 for transfers below the minimum."""
    counterparty: str
    observed_at: int
    """Unix timestamp (seconds) of the transaction's block time."""
    credited_at: int
    """Unix timestamp (seconds) when the ledger accepted it."""

    @classmethod
    def from_transfer(
        cls,
        transfer: IncomingTransfer,
        credit_amount: int,
        credited_at: int,
    ) -> "ProcessedSignatureRecord":
        return cls(
            signature=transfer.signature,
            amount_sol=transfer.amount,
            amount_lamports=transfer.lamports,
            credit_amount=credit_amount,
            counterparty=transfer.counterparty,
            observed_at=int(transfer.observed_at.timestamp()),
            credited_at=credited_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "amount_sol": str(self.amount_sol),
            "amount_lamports": self.amount_lamports,
            "credit_amount": self.credit_amount,
            "counterparty": self.counterparty,
            "observed_at": self.observed_at,
            "credited_at": self.credited_at,
        }
