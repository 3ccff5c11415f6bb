"""
Pytest tests for the exchange rule and the donation ledger (at-most-once crediting).

Uses a temporary SQLite store via conftest fixtures.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from conftest import make_transfer

from backend_octo.core.exceptions import LedgerUnavailable, StoreUnavailable
from backend_octo.database.database import SQLiteDonationStore
from backend_octo.ledger.exchange import ExchangeRule
from backend_octo.ledger.ledger import CreditStatus, DonationLedger
from backend_octo.notifications.events import DonationAccepted
from backend_octo.vitality.machine import Phase, VitalityConfig, VitalityStateMachine


def _vitality(initial: int = 10, events=None) -> VitalityStateMachine:
    return VitalityStateMachine(
        VitalityConfig(initial=initial),
        publish=events.append if events is not None else None,
    )


# --- Exchange rule ---


@pytest.mark.parametrize(
    "amount,expected",
    [
        ("0", 0),
        ("0.005", 0),
        ("0.009999999", 0),
        ("0.01", 1),
        ("0.019", 1),
        ("0.5", 50),
        ("1", 100),
        ("1.234567891", 123),
    ],
)
def test_exchange_credits_floor(amount, expected):
    assert ExchangeRule().credits_for(Decimal(amount)) == expected


def test_exchange_minimum_above_rate():
    rule = ExchangeRule(rate=Decimal("0.01"), minimum=Decimal("0.05"))
    assert rule.credits_for(Decimal("0.04")) == 0
    assert rule.credits_for(Decimal("0.05")) == 5


def test_exchange_validation():
    with pytest.raises(ValueError):
        ExchangeRule(rate=Decimal("0"))
    with pytest.raises(ValueError):
        ExchangeRule(minimum=Decimal("-1"))


def test_exchange_table():
    table = ExchangeRule().table((1, 50))
    assert table == [{"sol": "0.01", "hp": 1}, {"sol": "0.50", "hp": 50}]


# --- Ledger submit ---


def test_submit_credits_once(store):
    """Same signature twice: Credited then AlreadyProcessed; resource reflects one credit."""
    events = []
    vitality = _vitality(initial=10)
    ledger = DonationLedger(store, vitality, publish=events.append)
    t = make_transfer("sig-a", "0.5")

    async def _go():
        return await ledger.submit(t), await ledger.submit(t)

    first, second = asyncio.run(_go())
    assert first.status is CreditStatus.CREDITED
    assert first.credit_amount == 50
    assert first.credited
    assert second.status is CreditStatus.ALREADY_PROCESSED
    assert second.credit_amount == 0
    assert vitality.resource == 60
    accepted = [e for e in events if isinstance(e, DonationAccepted)]
    assert len(accepted) == 1
    assert accepted[0].credit_amount == 50
    assert accepted[0].amount == Decimal("0.5")


def test_submit_persists_record_and_snapshot(store):
    vitality = _vitality(initial=10)
    ledger = DonationLedger(store, vitality, clock=lambda: 1_700_000_000.0)
    asyncio.run(ledger.submit(make_transfer("sig-b", "0.25")))

    records = store.list_processed()
    assert len(records) == 1
    assert records[0].signature == "sig-b"
    assert records[0].amount_sol == Decimal("0.25")
    assert records[0].credit_amount == 25
    assert records[0].credited_at == 1_700_000_000
    snap = store.load_vitality()
    assert snap is not None
    assert snap.resource == 35
    assert snap.phase is Phase.DEPLETING


def test_submit_dust_marked_processed(store):
    """Below minimum: zero credit, signature processed, no re-evaluation on resubmit."""
    events = []
    vitality = _vitality(initial=10)
    ledger = DonationLedger(store, vitality, publish=events.append)
    t = make_transfer("sig-dust", "0.005")

    async def _go():
        return await ledger.submit(t), await ledger.submit(t)

    first, second = asyncio.run(_go())
    assert first.status is CreditStatus.BELOW_MINIMUM
    assert first.credit_amount == 0
    assert second.status is CreditStatus.ALREADY_PROCESSED
    assert vitality.resource == 10
    assert store.has_processed("sig-dust")
    assert store.total_credited() == 0
    assert not [e for e in events if isinstance(e, DonationAccepted)]


def test_submit_rejects_non_positive(store):
    ledger = DonationLedger(store, _vitality())
    with pytest.raises(ValueError):
        asyncio.run(ledger.submit(make_transfer("sig-neg", "0")))
    assert not store.has_processed("sig-neg")


def test_concurrent_submits_credit_once(store):
    """Poll/push overlap: concurrent submits of one signature credit exactly once."""
    vitality = _vitality(initial=10)
    ledger = DonationLedger(store, vitality)
    t = make_transfer("sig-race", "1.0")

    async def _go():
        return await asyncio.gather(*[ledger.submit(t) for _ in range(5)])

    results = asyncio.run(_go())
    statuses = [r.status for r in results]
    assert statuses.count(CreditStatus.CREDITED) == 1
    assert statuses.count(CreditStatus.ALREADY_PROCESSED) == 4
    assert vitality.resource == 110
    assert store.count_processed() == 1


def test_restart_does_not_recredit(tmp_path):
    """A fresh ledger over the same DB treats the signature as processed."""
    path = tmp_path / "octo.db"
    t = make_transfer("sig-restart", "0.3")

    store1 = SQLiteDonationStore(path)
    store1.ensure_schema()
    v1 = _vitality(initial=10)
    asyncio.run(DonationLedger(store1, v1).submit(t))
    assert v1.resource == 40

    store2 = SQLiteDonationStore(path)
    v2 = _vitality(initial=10)
    v2.restore(store2.load_vitality())
    result = asyncio.run(DonationLedger(store2, v2).submit(t))
    assert result.status is CreditStatus.ALREADY_PROCESSED
    assert v2.resource == 40


class _BrokenStore(SQLiteDonationStore):
    """Store whose writes fail, as when the disk is full or the DB is locked."""

    def mark_processed(self, record, snapshot=None):
        raise StoreUnavailable("database is locked")


class _UnreadableStore(SQLiteDonationStore):
    def has_processed(self, signature):
        raise StoreUnavailable("unable to open database file")


@pytest.mark.parametrize("store_cls", [_BrokenStore, _UnreadableStore])
def test_store_failure_raises_ledger_unavailable(tmp_path, store_cls):
    """Storage failure propagates loudly; nothing credited, retry is safe."""
    broken = store_cls(tmp_path / "octo.db")
    broken.ensure_schema()
    vitality = _vitality(initial=10)
    ledger = DonationLedger(broken, vitality)
    t = make_transfer("sig-retry", "0.5")

    with pytest.raises(LedgerUnavailable) as exc:
        asyncio.run(ledger.submit(t))
    assert exc.value.signature == "sig-retry"
    assert isinstance(exc.value.cause, StoreUnavailable)
    assert vitality.resource == 10

    healthy = SQLiteDonationStore(tmp_path / "octo.db")
    result = asyncio.run(DonationLedger(healthy, vitality).submit(t))
    assert result.status is CreditStatus.CREDITED
    assert vitality.resource == 60


def test_sqlite_error_surfaces_as_store_unavailable(tmp_path):
    """A directory where the DB file should be makes sqlite fail to open."""
    bad = tmp_path / "is_a_dir.db"
    bad.mkdir()
    store = SQLiteDonationStore(bad)
    with pytest.raises(StoreUnavailable):
        store.has_processed("x")
    ledger = DonationLedger(store, _vitality())
    with pytest.raises(LedgerUnavailable):
        asyncio.run(ledger.submit(make_transfer("sig-x", "0.5")))
