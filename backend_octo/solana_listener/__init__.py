"""
Solana listener package.

Polls the monitored wallet via JSON-RPC, normalizes raw transactions into
IncomingTransfer facts, and forwards them to the donation ledger.
"""

from backend_octo.solana_listener.listener import DonationListener
from backend_octo.solana_listener.models import (
    LAMPORTS_PER_SOL,
    UNKNOWN_COUNTERPARTY,
    IncomingTransfer,
    SignatureInfo,
)
from backend_octo.solana_listener.normalizer import normalize
from backend_octo.solana_listener.rpc import SolanaRpcClient

__all__ = [
    "DonationListener",
    "IncomingTransfer",
    "LAMPORTS_PER_SOL",
    "SignatureInfo",
    "SolanaRpcClient",
    "UNKNOWN_COUNTERPARTY",
    "normalize",
]
