"""
Application-level exceptions.

Provider failures (RpcError) are transient: loops log them and retry on the
next tick. Storage failures (StoreUnavailable) surface from the ledger as
LedgerUnavailable so the ingestion driver retries the same transfer later.
"""

from __future__ import annotations


class OctoError(Exception):
    """Base class for Backend Octo errors."""


class RpcError(OctoError):
    """Solana RPC transport, HTTP or JSON-RPC error."""

    def __init__(self, message: str, *, code: int | None = None, method: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.method = method


class StoreUnavailable(OctoError):
    """Durable donation store could not be read or written."""


class LedgerUnavailable(OctoError):
    """The ledger could not decide whether a transfer was credited; retry the submit."""

    def __init__(self, signature: str, cause: BaseException | None = None) -> None:
        super().__init__(f"ledger unavailable for signature {signature}: {cause}")
        self.signature = signature
        self.cause = cause
