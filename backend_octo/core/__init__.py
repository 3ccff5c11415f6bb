"""
Core utilities — shared exceptions and cross-cutting concerns.
"""

from backend_octo.core.exceptions import (
    LedgerUnavailable,
    OctoError,
    RpcError,
    StoreUnavailable,
)

__all__ = [
    "LedgerUnavailable",
    "OctoError",
    "RpcError",
    "StoreUnavailable",
]
