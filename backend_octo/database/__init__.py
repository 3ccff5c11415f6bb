"""
Database abstraction layer — processed donation signatures and vitality state.

MVP uses SQLite via SQLiteDonationStore and get_database(); the backend is swappable.
"""

from backend_octo.database.database import (
    DonationStore,
    SQLiteDonationStore,
    get_database,
)
from backend_octo.database.models import ProcessedSignatureRecord

__all__ = [
    "DonationStore",
    "ProcessedSignatureRecord",
    "SQLiteDonationStore",
    "get_database",
]
