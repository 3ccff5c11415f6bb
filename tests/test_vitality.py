"""
Pytest tests for the vitality state machine: phase buckets, decay, cap clamp, revival, restore.
"""

from __future__ import annotations

import asyncio

import pytest

from backend_octo.notifications.events import PhaseChanged
from backend_octo.vitality.machine import (
    Phase,
    VitalityConfig,
    VitalitySnapshot,
    VitalityStateMachine,
    phase_for,
    run_decay_loop,
)

CONFIG = VitalityConfig(cap=720, thriving_above=60, critical_at_or_below=14, initial=60)


def _machine(initial: int = 60, **kwargs) -> VitalityStateMachine:
    cfg = VitalityConfig(cap=720, thriving_above=60, critical_at_or_below=14, initial=initial)
    return VitalityStateMachine(cfg, **kwargs)


@pytest.mark.parametrize(
    "resource,expected",
    [
        (0, Phase.EXTINCT),
        (1, Phase.CRITICAL),
        (14, Phase.CRITICAL),
        (15, Phase.DEPLETING),
        (60, Phase.DEPLETING),
        (61, Phase.THRIVING),
        (720, Phase.THRIVING),
    ],
)
def test_phase_buckets(resource, expected):
    """Phase is a pure function of resource, independent of history."""
    assert phase_for(resource, CONFIG) is expected


def test_phase_independent_of_path():
    up = _machine(initial=0)
    down = _machine(initial=100)

    async def _go():
        await up.credit(30)
        await down.decay(70)

    asyncio.run(_go())
    assert up.resource == down.resource == 30
    assert up.phase is down.phase is Phase.DEPLETING


@pytest.mark.parametrize(
    "kwargs",
    [
        {"thriving_above": 10, "critical_at_or_below": 10},
        {"thriving_above": 60, "critical_at_or_below": 0},
        {"cap": 50, "thriving_above": 60},
        {"initial": 721},
        {"initial": -1},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        VitalityConfig(**kwargs)


@pytest.mark.parametrize("k", [0, 1, 10, 59, 60, 61, 200])
def test_decay_monotonic_without_credits(k):
    """After k ticks resource == max(0, initial - k)."""
    m = _machine(initial=60)

    async def _go():
        for _ in range(k):
            await m.decay()

    asyncio.run(_go())
    assert m.resource == max(0, 60 - k)


def test_decay_noop_when_extinct():
    m = _machine(initial=1)

    async def _go():
        await m.decay()
        assert m.phase is Phase.EXTINCT
        state = await m.decay(5)
        assert state.resource == 0

    asyncio.run(_go())
    assert m.phase is Phase.EXTINCT


def test_cap_clamp():
    m = _machine(initial=700)

    async def _go():
        for _ in range(10):
            await m.credit(100)

    asyncio.run(_go())
    assert m.resource == 720
    assert m.phase is Phase.THRIVING


@pytest.mark.parametrize("c,expected", [(1, 1), (14, 14), (50, 50), (100, 100), (5000, 720)])
def test_revival_from_extinct(c, expected):
    m = _machine(initial=0)
    assert m.phase is Phase.EXTINCT
    asyncio.run(m.credit(c))
    assert m.resource == expected
    assert m.phase is not Phase.EXTINCT
    assert m.phase is phase_for(expected, m.config)


@pytest.mark.parametrize("c", [0, -5])
def test_credit_rejects_non_positive(c):
    m = _machine()
    with pytest.raises(ValueError):
        asyncio.run(m.credit(c))


def test_phase_change_published():
    events = []
    m = _machine(initial=15, publish=events.append)

    async def _go():
        await m.decay()  # 14 -> critical
        await m.decay()  # 13, same phase
        await m.credit(100)  # 113 -> thriving

    asyncio.run(_go())
    assert [(e.old_phase, e.new_phase) for e in events] == [
        ("depleting", "critical"),
        ("critical", "thriving"),
    ]
    assert all(isinstance(e, PhaseChanged) for e in events)
    assert events[-1].resource == 113


def test_commit_false_leaves_state_untouched():
    m = _machine(initial=10)
    seen = []

    def _commit(snap: VitalitySnapshot) -> bool:
        seen.append(snap)
        return False

    applied = asyncio.run(m.credit(50, commit=_commit))
    assert applied is False
    assert m.resource == 10
    assert seen[0].resource == 60
    assert seen[0].phase is Phase.DEPLETING


def test_commit_raising_leaves_state_untouched():
    m = _machine(initial=10)

    def _commit(snap: VitalitySnapshot) -> bool:
        raise RuntimeError("disk gone")

    with pytest.raises(RuntimeError):
        asyncio.run(m.credit(50, commit=_commit))
    assert m.resource == 10


def test_concurrent_decay_and_credit_lose_no_updates():
    m = _machine(initial=300)

    async def _go():
        await asyncio.gather(
            *[m.decay() for _ in range(100)],
            *[m.credit(2) for _ in range(100)],
        )

    asyncio.run(_go())
    assert m.resource == 300 - 100 + 200


def test_decay_persist_failure_logged_not_raised():
    m = _machine(initial=30)

    def _persist(snap):
        raise OSError("read-only")

    asyncio.run(m.decay(persist=_persist))
    assert m.resource == 29


def test_restore_with_catch_up():
    """Ticks missed while the process was down are applied at once."""
    now = 10_000.0
    m = _machine(clock=lambda: now)
    missed = m.restore(
        VitalitySnapshot(resource=100, phase=Phase.THRIVING, updated_at=now - 30 * 60 - 5),
        catch_up_period_sec=60,
    )
    assert missed == 30
    assert m.resource == 70
    assert m.phase is Phase.THRIVING


def test_restore_without_catch_up_and_clamps():
    m = _machine(clock=lambda: 0.0)
    assert m.restore(VitalitySnapshot(resource=9999, phase=Phase.THRIVING, updated_at=0.0)) == 0
    assert m.resource == 720


def test_run_decay_loop_ticks_and_stops():
    m = _machine(initial=60)
    persisted = []

    async def _go():
        stop = asyncio.Event()
        task = asyncio.create_task(run_decay_loop(m, 0.01, stop, persist=persisted.append))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(_go())
    assert m.resource < 60
    assert persisted
    assert persisted[-1].resource == m.resource


def test_run_decay_loop_rejects_bad_period():
    m = _machine()
    with pytest.raises(ValueError):
        asyncio.run(run_decay_loop(m, 0, asyncio.Event()))


def test_credit_keeps_last_tick():
    """A credit stamps updated_at but leaves the decay schedule alone."""
    now = [1000.0]
    m = _machine(initial=100, clock=lambda: now[0])
    committed = []

    def _commit(snap: VitalitySnapshot) -> bool:
        committed.append(snap)
        return True

    now[0] = 1050.0
    assert asyncio.run(m.credit(10, commit=_commit))
    assert committed[0].updated_at == 1050.0
    assert committed[0].last_tick_at == 1000.0
    assert m.seconds_until_tick(60) == 10.0


def test_restore_catches_up_from_last_tick():
    """Frequent credits do not hide missed ticks; the partial period carries over."""
    now = [1100.0]
    m = _machine(clock=lambda: now[0])
    missed = m.restore(
        VitalitySnapshot(resource=110, phase=Phase.THRIVING, updated_at=1050.0, last_tick_at=1000.0),
        catch_up_period_sec=60,
    )
    assert missed == 1
    assert m.resource == 109
    assert m.last_tick_at == 1060.0
    assert m.seconds_until_tick(60) == 20.0


def test_decay_resets_tick_schedule():
    now = [0.0]
    m = _machine(clock=lambda: now[0])
    now[0] = 45.0
    asyncio.run(m.decay())
    assert m.last_tick_at == 45.0
    assert m.snapshot().last_tick_at == 45.0
    now[0] = 200.0
    assert m.seconds_until_tick(60) == 0.0
