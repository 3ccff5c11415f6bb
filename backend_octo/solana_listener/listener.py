"""
Solana donation listener: poll trigger and the shared fetch-and-diff routine.

Responsibilities:
- Periodically fetch the most recent signatures for the monitored wallet.
- Diff them against this instance's in-memory seen set and fetch new transactions.
- Normalize each transaction and hand incoming transfers to the ledger.
- Park transfers the ledger could not accept (LedgerUnavailable) and retry them.

Push notifications call check_now() as well; both triggers converge on the
same routine, and the ledger's signature dedup makes the overlap safe.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable

from backend_octo.core.exceptions import LedgerUnavailable, RpcError
from backend_octo.octo_logging import bind_wallet
from backend_octo.solana_listener.models import IncomingTransfer, SignatureInfo
from backend_octo.solana_listener.normalizer import normalize
from backend_octo.solana_listener.rpc import SolanaRpcClient

DEFAULT_POLL_INTERVAL_SEC = 15.0
DEFAULT_SIGNATURES_LIMIT = 20
DEFAULT_MAX_SEEN_SIGNATURES = 10_000


def _short(value: str, n: int = 16) -> str:
    return value[:n] + "..." if len(value) > n else value


class DonationListener:
    """
    Polling-based listener for one monitored wallet.

    check_now() is safe to call from any trigger: calls are serialized, so a
    push arriving mid-poll runs right after the poll instead of being dropped.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        wallet: str,
        *,
        on_transfer: Callable[[IncomingTransfer], Awaitable[Any]],
        on_balance: Callable[[int], None] | None = None,
        poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        signatures_limit: int = DEFAULT_SIGNATURES_LIMIT,
        max_seen_signatures: int = DEFAULT_MAX_SEEN_SIGNATURES,
        skip_existing_on_start: bool = False,
        started_at: float | None = None,
    ) -> None:
        """
        Args:
            rpc: Solana RPC client.
            wallet: Base58 address of the monitored wallet.
            on_transfer: Coroutine receiving each IncomingTransfer (oldest first).
                Raising LedgerUnavailable parks the transfer for retry.
            on_balance: Optional callback with the wallet balance (lamports) after each check.
            poll_interval_sec: Seconds between poll cycles.
            signatures_limit: Recent-signature window per check (1–1000).
            max_seen_signatures: Max signatures kept in memory for diffing.
            skip_existing_on_start: On the first successful check, mark signatures
                confirmed before started_at as seen without processing them.
            started_at: Baseline cutoff (unix seconds); defaults to construction time.
        """
        if not wallet.strip():
            raise ValueError("wallet must be non-empty")
        if poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        if not (1 <= signatures_limit <= 1000):
            raise ValueError("signatures_limit must be between 1 and 1000")

        self._rpc = rpc
        self._wallet = wallet.strip()
        self._on_transfer = on_transfer
        self._on_balance = on_balance
        self._poll_interval_sec = poll_interval_sec
        self._signatures_limit = signatures_limit
        self._max_seen = max_seen_signatures
        self._skip_existing = skip_existing_on_start
        self.started_at = time.time() if started_at is None else started_at
        self._log = bind_wallet(self._wallet, __name__)

        # set for O(1) dedup + deque for FIFO eviction when over capacity
        self._seen: set[str] = set()
        self._seen_order: deque[str] = deque()
        self._pending: dict[str, IncomingTransfer] = {}
        self._check_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self.last_check_at: float | None = None
        self.check_count = 0

    @property
    def wallet(self) -> str:
        return self._wallet

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def has_seen(self, signature: str) -> bool:
        return signature in self._seen

    def stop(self) -> None:
        """Request shutdown; the poll loop exits after the current cycle."""
        self._stop_event.set()

    async def run(self) -> None:
        """Poll until stop(). Cycle errors are logged and the next tick retries."""
        self._log.info(
            "listener_started",
            poll_interval_sec=self._poll_interval_sec,
            signatures_limit=self._signatures_limit,
        )
        while not self._stop_event.is_set():
            try:
                await self.check_now("poll")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log.exception("listener_poll_cycle_error", error=str(e))
            if self._stop_event.is_set():
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_sec)
            except asyncio.TimeoutError:
                pass
        self._log.info("listener_poll_loop_exited")

    async def check_now(self, trigger: str = "poll") -> int:
        """
        Fetch recent signatures, diff against the seen set, and dispatch new transfers.
        Returns the number of transfers the ledger accepted for evaluation this call.
        """
        async with self._check_lock:
            self.check_count += 1
            dispatched = await self._retry_pending()
            try:
                infos = await self._rpc.list_recent_signatures(self._wallet, self._signatures_limit)
            except RpcError as e:
                self._log.warning(
                    "listener_signatures_fetch_failed",
                    trigger=trigger,
                    error=str(e),
                )
                return dispatched

            if self._skip_existing:
                infos = self._apply_baseline(infos)

            # RPC returns newest first; process oldest first (chronological)
            new_infos = [i for i in reversed(infos) if i.signature not in self._seen]
            if new_infos:
                self._log.info(
                    "listener_new_signatures",
                    trigger=trigger,
                    signature_count=len(new_infos),
                    oldest_slot=new_infos[0].slot,
                )
            for info in new_infos:
                if await self._process_signature(info):
                    dispatched += 1

            self.last_check_at = time.time()
            await self._report_balance()
            return dispatched

    def _apply_baseline(self, infos: list[SignatureInfo]) -> list[SignatureInfo]:
        """
        Mark signatures confirmed before this listener started as seen; return the rest.
        Unknown block time counts as new, so nothing after start is skipped.
        """
        remaining: list[SignatureInfo] = []
        skipped = 0
        for info in infos:
            if info.block_time is not None and info.block_time < self.started_at:
                self._mark_seen(info.signature)
                skipped += 1
            else:
                remaining.append(info)
        self._skip_existing = False
        self._log.info(
            "listener_baseline_set",
            skipped=skipped,
            started_at=self.started_at,
        )
        return remaining

    async def _retry_pending(self) -> int:
        """Resubmit transfers parked after LedgerUnavailable; keep the ones still failing."""
        if not self._pending:
            return 0
        done = 0
        for sig, transfer in list(self._pending.items()):
            try:
                await self._on_transfer(transfer)
            except LedgerUnavailable as e:
                self._log.warning(
                    "listener_pending_retry_failed",
                    signature=_short(sig),
                    error=str(e),
                )
                break
            del self._pending[sig]
            done += 1
            self._log.info("listener_pending_retry_ok", signature=_short(sig))
        return done

    async def _process_signature(self, info: SignatureInfo) -> bool:
        sig = info.signature
        if sig in self._pending:
            return False
        if info.failed:
            self._mark_seen(sig)
            return False
        try:
            raw = await self._rpc.get_transaction(sig)
        except RpcError as e:
            self._log.warning("listener_tx_fetch_failed", signature=_short(sig), error=str(e))
            return False
        if raw is None:
            # Not yet visible at this commitment; leave unseen for the next tick
            self._log.debug("listener_tx_not_found", signature=_short(sig))
            return False

        transfer = normalize(raw, self._wallet, signature=sig)
        if transfer is None:
            self._log.debug("listener_tx_not_incoming", signature=_short(sig))
            self._mark_seen(sig)
            return False

        self._log.info(
            "listener_incoming_transfer",
            signature=_short(sig),
            amount_sol=str(transfer.amount),
            counterparty=_short(transfer.counterparty),
        )
        try:
            await self._on_transfer(transfer)
        except LedgerUnavailable as e:
            self._log.error(
                "listener_ledger_unavailable",
                signature=_short(sig),
                error=str(e),
            )
            self._pending[sig] = transfer
            self._mark_seen(sig)
            return False
        except Exception as e:
            self._log.exception("listener_dispatch_failed", signature=_short(sig), error=str(e))
            return False
        self._mark_seen(sig)
        return True

    def _mark_seen(self, sig: str) -> None:
        """Mark signature as seen; evict oldest if over capacity."""
        if sig in self._seen:
            return
        if len(self._seen) >= self._max_seen and self._seen_order:
            oldest = self._seen_order.popleft()
            self._seen.discard(oldest)
        self._seen.add(sig)
        self._seen_order.append(sig)

    async def _report_balance(self) -> None:
        if self._on_balance is None:
            return
        try:
            lamports = await self._rpc.get_balance(self._wallet)
        except RpcError as e:
            self._log.debug("listener_balance_fetch_failed", error=str(e))
            return
        try:
            self._on_balance(lamports)
        except Exception as e:
            self._log.warning("listener_balance_callback_failed", error=str(e))
