"""
Core agent loop: listener + push stream → ledger → vitality, with HP decay.

Wires the durable store, the vitality state machine (restored from the
store), the donation ledger, the polling listener, the best-effort push
stream and the decay timer, then runs them concurrently on one event loop
with a heartbeat log. Errors in any one activity are logged; the others
keep running.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from backend_octo.config.settings import Settings
from backend_octo.database.database import DonationStore, get_database
from backend_octo.ingestion.account_stream import AccountChangeStream, StreamConfig
from backend_octo.ledger.exchange import ExchangeRule
from backend_octo.ledger.ledger import CreditResult, DonationLedger
from backend_octo.notifications.events import BalanceUpdated
from backend_octo.notifications.hub import NotificationHub, log_event
from backend_octo.octo_logging import get_logger
from backend_octo.solana_listener.listener import DonationListener
from backend_octo.solana_listener.models import IncomingTransfer
from backend_octo.solana_listener.rpc import SolanaRpcClient
from backend_octo.vitality.machine import (
    VitalityConfig,
    VitalityStateMachine,
    run_decay_loop,
)

logger = get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_SEC = 60.0


@dataclass
class WorkerState:
    """Mutable counters for heartbeat and the status API."""

    started_at: float | None = None
    credited_count: int = 0
    credited_hp: int = 0
    last_credit_at: float | None = None
    last_balance_lamports: int | None = None
    results: dict[str, int] = field(default_factory=dict)


class OctoWorker:
    """Owns every pipeline component for one monitored wallet."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: DonationStore | None = None,
        rpc: SolanaRpcClient | None = None,
        hub: NotificationHub | None = None,
        stream_connect: Callable[..., Any] | None = None,
        heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC,
    ) -> None:
        self.settings = settings
        self.state = WorkerState()
        self.hub = hub or NotificationHub()
        self.hub.subscribe(log_event)
        self.store = store or get_database(settings.db_path)
        self.rpc = rpc or SolanaRpcClient(
            settings.rpc_url,
            timeout_sec=settings.request_timeout_sec,
        )
        self._heartbeat_interval = max(1.0, heartbeat_interval_sec)
        self._stop_event = asyncio.Event()

        self.vitality = VitalityStateMachine(
            VitalityConfig(
                cap=settings.max_hp,
                thriving_above=settings.thriving_above,
                critical_at_or_below=settings.critical_at_or_below,
                initial=settings.initial_hp,
            ),
            publish=self.hub.publish,
        )
        snapshot = self.store.load_vitality()
        # the vitality row is written on first start, so its absence means no earlier run
        fresh_install = snapshot is None
        if snapshot is not None:
            self.vitality.restore(snapshot, catch_up_period_sec=settings.decay_period_sec)
        self.store.save_vitality(self.vitality.snapshot())

        self.ledger = DonationLedger(
            self.store,
            self.vitality,
            exchange=ExchangeRule(rate=settings.min_donation_sol, minimum=settings.min_donation_sol),
            publish=self.hub.publish,
        )
        self.listener = DonationListener(
            self.rpc,
            settings.wallet_address,
            on_transfer=self._on_transfer,
            on_balance=self._on_balance,
            poll_interval_sec=settings.poll_interval_sec,
            signatures_limit=settings.signatures_limit,
            skip_existing_on_start=fresh_install,
        )
        self.stream: AccountChangeStream | None = None
        if settings.push_enabled and settings.ws_url:
            self.stream = AccountChangeStream(
                StreamConfig(
                    ws_url=settings.ws_url,
                    reconnect_min_sec=settings.push_backoff_min_sec,
                    reconnect_max_sec=settings.push_backoff_max_sec,
                    max_attempts=settings.push_max_attempts,
                ),
                settings.wallet_address,
                self._on_push,
                connect=stream_connect,
            )

    async def _on_transfer(self, transfer: IncomingTransfer) -> CreditResult:
        result = await self.ledger.submit(transfer)
        self.state.results[result.status.value] = self.state.results.get(result.status.value, 0) + 1
        if result.credited:
            self.state.credited_count += 1
            self.state.credited_hp += result.credit_amount
            self.state.last_credit_at = time.time()
        return result

    def _on_balance(self, lamports: int) -> None:
        if lamports != self.state.last_balance_lamports:
            self.state.last_balance_lamports = lamports
            self.hub.publish(BalanceUpdated(lamports=lamports))

    async def _on_push(self) -> None:
        await self.listener.check_now("push")

    def push_status(self) -> str:
        if self.stream is None:
            return "disabled"
        if self.stream.abandoned:
            return "abandoned"
        return "connected" if self.stream.connected else "connecting"

    def stop(self) -> None:
        self._stop_event.set()
        self.listener.stop()
        if self.stream is not None:
            self.stream.stop()

    async def run(self) -> None:
        """Run poll loop, push stream, decay timer and heartbeat until stop()."""
        self.state.started_at = time.time()
        logger.info(
            "worker_started",
            wallet_id=self.settings.wallet_address,
            resource=self.vitality.resource,
            phase=self.vitality.phase.value,
            poll_interval_sec=self.settings.poll_interval_sec,
            decay_period_sec=self.settings.decay_period_sec,
            push=self.push_status(),
        )
        tasks = [
            asyncio.create_task(self.listener.run(), name="octo-listener"),
            asyncio.create_task(
                run_decay_loop(
                    self.vitality,
                    self.settings.decay_period_sec,
                    self._stop_event,
                    persist=self.store.save_vitality,
                ),
                name="octo-decay",
            ),
            asyncio.create_task(self._heartbeat(), name="octo-heartbeat"),
        ]
        if self.stream is not None:
            tasks.append(asyncio.create_task(self.stream.run(), name="octo-push"))
        try:
            await self._stop_event.wait()
        finally:
            self.stop()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, res in zip(tasks, results):
                if isinstance(res, Exception):
                    logger.error("worker_task_failed", task=task.get_name(), error=str(res))
            await self.rpc.aclose()
            logger.info("worker_stopped", resource=self.vitality.resource)

    async def _heartbeat(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._heartbeat_interval)
                return
            except asyncio.TimeoutError:
                pass
            logger.info(
                "worker_heartbeat",
                resource=self.vitality.resource,
                phase=self.vitality.phase.value,
                credited_count=self.state.credited_count,
                credited_hp=self.state.credited_hp,
                pending=self.listener.pending_count,
                last_check_at=self.listener.last_check_at,
                push=self.push_status(),
            )


def run_worker(settings: Settings) -> None:
    """Blocking entrypoint: run the worker until interrupted."""
    async def _main() -> None:
        worker = OctoWorker(settings)
        await worker.run()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        logger.info("worker_keyboard_interrupt")
