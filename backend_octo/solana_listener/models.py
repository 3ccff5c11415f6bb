"""
Data models for Solana listener output.

SignatureInfo mirrors one getSignaturesForAddress item; IncomingTransfer is
the canonical normalized fact handed to the donation ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

LAMPORTS_PER_SOL = 1_000_000_000
UNKNOWN_COUNTERPARTY = "unknown"


@dataclass(frozen=True)
class SignatureInfo:
    """
    Transaction signature info from getSignaturesForAddress.

    Mirrors Solana RPC response fields; the listener diffs these against its
    seen set before fetching full transactions.
    """

    signature: str
    slot: int
    err: Any  # None if success; dict/object from RPC if failed
    block_time: int | None  # Unix timestamp; None if not available
    memo: str | None
    confirmation_status: str | None  # processed | confirmed | finalized

    @property
    def failed(self) -> bool:
        return self.err is not None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "SignatureInfo":
        """Build from a single getSignaturesForAddress result item."""
        return cls(
            signature=item["signature"],
            slot=int(item["slot"]),
            err=item.get("err"),
            block_time=item.get("blockTime"),
            memo=item.get("memo"),
            confirmation_status=item.get("confirmationStatus"),
        )


@dataclass(frozen=True)
class IncomingTransfer:
    """
    Positive SOL balance delta credited to the monitored account by one transaction.

    signature is the sole deduplication key; counterparty is cosmetic.
    """

    signature: str
    amount: Decimal
    """Amount in SOL (exact; lamports / 1e9)."""
    counterparty: str
    observed_at: datetime
    """Block time (UTC) of the transaction."""
    lamports: int = 0
    slot: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "amount_sol": str(self.amount),
            "lamports": self.lamports,
            "counterparty": self.counterparty,
            "observed_at": self.observed_at.isoformat(),
            "slot": self.slot,
        }
