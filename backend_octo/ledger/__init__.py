"""
Donation ledger — signature dedup, exchange rule, at-most-once HP credit.
"""

from backend_octo.ledger.exchange import ExchangeRule
from backend_octo.ledger.ledger import (
    CreditResult,
    CreditStatus,
    DonationLedger,
)

__all__ = [
    "CreditResult",
    "CreditStatus",
    "DonationLedger",
    "ExchangeRule",
]
