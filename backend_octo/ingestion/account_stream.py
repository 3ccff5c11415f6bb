"""
Push ingestion: WebSocket accountSubscribe → debounced change callback.

Connects to the Solana WebSocket endpoint, subscribes to account updates for
the monitored wallet and, on every accountNotification, schedules a debounced
call to on_change (the worker binds it to the listener's fetch-and-diff
routine). Push is a latency optimization only: no transfer data is read from
the notification itself.

Fault tolerance: reconnect with capped exponential backoff; after
max_attempts consecutive failures push is abandoned for the process
lifetime. Polling keeps running regardless.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from backend_octo.core.exceptions import OctoError
from backend_octo.octo_logging import get_logger

logger = get_logger(__name__)

DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 10.0
DEFAULT_DEBOUNCE_SEC = 1.0
DEFAULT_RECONNECT_MIN_SEC = 2.0
DEFAULT_RECONNECT_MAX_SEC = 30.0
DEFAULT_MAX_ATTEMPTS = 10
_SUBSCRIBE_TIMEOUT = 10.0
_WS_CLOSE_TIMEOUT = 5.0


class PushSubscribeError(OctoError):
    """accountSubscribe was rejected or never acknowledged."""


@dataclass
class StreamConfig:
    """Config for the account-change push stream."""

    ws_url: str
    debounce_sec: float = DEFAULT_DEBOUNCE_SEC
    reconnect_min_sec: float = DEFAULT_RECONNECT_MIN_SEC
    reconnect_max_sec: float = DEFAULT_RECONNECT_MAX_SEC
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    commitment: str = "confirmed"
    ws_ping_interval: float | None = DEFAULT_WS_PING_INTERVAL
    ws_ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT


def backoff_delay(attempt: int, min_sec: float, max_sec: float) -> float:
    """Delay before reconnect attempt number `attempt` (1-based): min * 2**(attempt-1), capped."""
    if attempt < 1:
        return 0.0
    return min(max_sec, min_sec * (2 ** (attempt - 1)))


class AccountChangeStream:
    """
    Best-effort accountSubscribe channel for one wallet.

    `connect` defaults to websockets.connect and is injectable for tests.
    """

    def __init__(
        self,
        config: StreamConfig,
        wallet: str,
        on_change: Callable[[], Awaitable[Any]],
        *,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        if not config.ws_url.strip():
            raise ValueError("ws_url must be non-empty")
        if config.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._config = config
        self._wallet = wallet
        self._on_change = on_change
        self._connect = connect or websockets.connect
        self._next_rpc_id = 0
        self._stop = asyncio.Event()
        self._debounce_task: asyncio.Task[None] | None = None
        self._pending_tasks: set[asyncio.Task[None]] = set()
        self.connected = False
        self.abandoned = False
        self.notification_count = 0
        self.failed_attempts = 0

    def _next_id(self) -> int:
        self._next_rpc_id += 1
        return self._next_rpc_id

    def stop(self) -> None:
        """Signal the stream to stop after the current iteration."""
        self._stop.set()

    async def run(self) -> None:
        """Connect, subscribe, route notifications; reconnect with backoff until stopped or abandoned."""
        run_id = 0
        while not self._stop.is_set():
            run_id += 1
            try:
                logger.info("stream_connecting", run_id=run_id, url=self._config.ws_url.split("?")[0])
                async with self._connect(
                    self._config.ws_url,
                    ping_interval=self._config.ws_ping_interval,
                    ping_timeout=self._config.ws_ping_timeout,
                    close_timeout=_WS_CLOSE_TIMEOUT,
                ) as ws:
                    sub_id = await self._subscribe(ws)
                    self.connected = True
                    self.failed_attempts = 0
                    logger.info(
                        "stream_connected",
                        run_id=run_id,
                        wallet_id=self._wallet,
                        subscription_id=sub_id,
                    )
                    await self._receive_loop(ws, sub_id)
                    logger.warning("stream_closed_by_server", run_id=run_id)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(
                    "stream_disconnected",
                    run_id=run_id,
                    code=getattr(e, "code", None),
                    reason=getattr(e, "reason", None),
                )
            except Exception as e:
                logger.warning("stream_error", run_id=run_id, error=str(e))
            finally:
                self.connected = False

            if self._stop.is_set():
                break
            self.failed_attempts += 1
            if self.failed_attempts >= self._config.max_attempts:
                self.abandoned = True
                logger.error(
                    "stream_push_abandoned",
                    wallet_id=self._wallet,
                    attempts=self.failed_attempts,
                )
                break
            delay = backoff_delay(
                self.failed_attempts,
                self._config.reconnect_min_sec,
                self._config.reconnect_max_sec,
            )
            logger.info(
                "stream_reconnect",
                run_id=run_id,
                attempt=self.failed_attempts,
                max_attempts=self._config.max_attempts,
                backoff_sec=round(delay, 1),
            )
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        await self._settle_pending(cancel=self._stop.is_set())
        logger.info("stream_stopped", run_id=run_id, abandoned=self.abandoned)

    async def _subscribe(self, ws: Any) -> int:
        """Send accountSubscribe and wait for its acknowledgement; return the subscription id."""
        req_id = self._next_id()
        req = {
            "jsonrpc": "2.0",
            "id": req_id,
            "method": "accountSubscribe",
            "params": [
                self._wallet,
                {"encoding": "base64", "commitment": self._config.commitment},
            ],
        }
        await ws.send(json.dumps(req))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + _SUBSCRIBE_TIMEOUT
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PushSubscribeError("accountSubscribe timed out")
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
            except asyncio.TimeoutError as e:
                raise PushSubscribeError("accountSubscribe timed out") from e
            try:
                msg = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                continue
            if not isinstance(msg, dict) or msg.get("id") != req_id:
                continue
            if msg.get("error"):
                raise PushSubscribeError(f"accountSubscribe rejected: {msg['error']}")
            sub_id = msg.get("result")
            if not isinstance(sub_id, int):
                raise PushSubscribeError(f"accountSubscribe returned no subscription id: {msg!r}")
            return sub_id

    async def _receive_loop(self, ws: Any, sub_id: int) -> None:
        async for raw in ws:
            if self._stop.is_set():
                return
            try:
                msg = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                continue
            if not isinstance(msg, dict) or msg.get("method") != "accountNotification":
                continue
            params = msg.get("params") or {}
            if params.get("subscription") != sub_id:
                continue
            slot = ((params.get("result") or {}).get("context") or {}).get("slot")
            self.notification_count += 1
            logger.debug("stream_account_notification", wallet_id=self._wallet, slot=slot)
            self._schedule_change()

    def _schedule_change(self) -> None:
        """Debounce: a burst of notifications collapses into one on_change call."""
        if self._debounce_task is not None and not self._debounce_task.done():
            return

        async def _debounced() -> None:
            await asyncio.sleep(self._config.debounce_sec)
            if self._stop.is_set():
                return
            try:
                await self._on_change()
            except Exception as e:
                logger.warning("stream_on_change_failed", error=str(e))

        task = asyncio.create_task(_debounced())
        self._debounce_task = task
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _settle_pending(self, *, cancel: bool) -> None:
        """Let scheduled checks finish (or cancel them on shutdown)."""
        tasks = list(self._pending_tasks)
        if not tasks:
            return
        if cancel:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
