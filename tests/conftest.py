"""
Pytest fixtures for Octo tests. Uses a temporary SQLite DB and a mocked Solana RPC.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import httpx
import pytest

# Valid Solana pubkeys (base58, 32 bytes)
VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
DONOR_WALLET = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
SYSTEM_PROGRAM = "11111111111111111111111111111111"


def make_transfer(signature: str = "sig-1", amount: str = "0.5", counterparty: str = DONOR_WALLET):
    """IncomingTransfer with lamports derived from the SOL amount."""
    from backend_octo.solana_listener.models import LAMPORTS_PER_SOL, IncomingTransfer

    value = Decimal(amount)
    return IncomingTransfer(
        signature=signature,
        amount=value,
        counterparty=counterparty,
        observed_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        lamports=int(value * LAMPORTS_PER_SOL),
    )


def make_raw_tx(
    signature: str,
    *,
    monitored: str = VALID_WALLET,
    donor: str = DONOR_WALLET,
    lamports: int = 500_000_000,
    err: Any = None,
    block_time: int | None = 1_735_689_600,
) -> dict[str, Any]:
    """getTransaction (json encoding) result: donor → monitored transfer of `lamports`."""
    fee = 5000
    return {
        "slot": 300_000_000,
        "blockTime": block_time,
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": [donor, monitored, SYSTEM_PROGRAM]},
        },
        "meta": {
            "err": err,
            "fee": fee,
            "preBalances": [2_000_000_000, 1_000_000_000, 1],
            "postBalances": [2_000_000_000 - lamports - fee, 1_000_000_000 + lamports, 1],
            "loadedAddresses": {"writable": [], "readonly": []},
        },
    }


class FakeSolana:
    """
    In-memory Solana JSON-RPC endpoint for httpx.MockTransport.

    `signatures` is newest first (as the RPC returns it); `transactions` maps
    signature → getTransaction result. Set `fail_methods` to force RPC errors.
    """

    def __init__(self) -> None:
        self.signatures: list[dict[str, Any]] = []
        self.transactions: dict[str, dict[str, Any]] = {}
        self.balance = 1_000_000_000
        self.fail_methods: set[str] = set()
        self.calls: list[str] = []

    def add_donation(
        self,
        signature: str,
        lamports: int = 500_000_000,
        *,
        err: Any = None,
        block_time: int | None = 1_735_689_600,
    ) -> None:
        self.signatures.insert(
            0,
            {
                "signature": signature,
                "slot": 300_000_000 + len(self.signatures),
                "err": err,
                "blockTime": block_time,
                "memo": None,
                "confirmationStatus": "confirmed",
            },
        )
        self.transactions[signature] = make_raw_tx(signature, lamports=lamports, err=err, block_time=block_time)
        self.balance += lamports

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method = body["method"]
        self.calls.append(method)
        if method in self.fail_methods:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32005, "message": "rate limited"}},
            )
        if method == "getSignaturesForAddress":
            limit = body["params"][1].get("limit", 1000)
            result: Any = self.signatures[:limit]
        elif method == "getTransaction":
            result = self.transactions.get(body["params"][0])
        elif method == "getBalance":
            result = {"context": {"slot": 1}, "value": self.balance}
        else:
            return httpx.Response(404)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def fake_solana() -> FakeSolana:
    return FakeSolana()


@pytest.fixture
def rpc_factory(fake_solana) -> Callable[[], Any]:
    """Build a SolanaRpcClient bound to fake_solana (create inside the running loop)."""
    from backend_octo.solana_listener.rpc import SolanaRpcClient

    def _make():
        return SolanaRpcClient(
            "https://rpc.test",
            transport=httpx.MockTransport(fake_solana.handler),
        )

    return _make


@pytest.fixture
def store(tmp_path):
    """Fresh SQLite donation store in a temp directory."""
    from backend_octo.database.database import get_database

    return get_database(tmp_path / "octo.db")


@pytest.fixture
def settings(tmp_path):
    """Settings for a valid wallet, temp DB, push disabled."""
    from backend_octo.config.settings import Settings

    return Settings(
        wallet_address=VALID_WALLET,
        rpc_url="https://rpc.test",
        ws_url="wss://rpc.test",
        db_path=tmp_path / "octo.db",
        push_enabled=False,
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove Octo/Solana env vars so Settings.from_env() sees defaults."""
    for name in (
        "OCTO_WALLET_ADDRESS",
        "OCTO_DB_PATH",
        "SOLANA_RPC_URL",
        "SOLANA_WS_URL",
        "HELIUS_API_KEY",
        "MIN_DONATION_SOL",
        "MAX_HP",
        "THRIVING_ABOVE",
        "CRITICAL_AT_OR_BELOW",
        "INITIAL_HP",
        "DECAY_PERIOD_SEC",
        "POLL_INTERVAL_SEC",
        "SIGNATURES_LIMIT",
        "RPC_TIMEOUT_SEC",
        "PUSH_ENABLED",
        "PUSH_MAX_ATTEMPTS",
        "PUSH_BACKOFF_MIN_SEC",
        "PUSH_BACKOFF_MAX_SEC",
    ):
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("backend_octo.config.env.load_octo_env", lambda: None)
    monkeypatch.setattr("backend_octo.config.settings.load_octo_env", lambda: None)
    from backend_octo.config.settings import get_settings

    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
