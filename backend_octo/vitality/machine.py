"""
Vitality state machine: the decaying HP resource.

HP drains by one per decay period and is refilled by ledger credits, clamped
to the cap. The phase is a pure function of HP:

    THRIVING   hp > thriving_above
    DEPLETING  critical_at_or_below < hp <= thriving_above
    CRITICAL   0 < hp <= critical_at_or_below
    EXTINCT    hp == 0

EXTINCT is terminal for decay (ticks are no-ops) but any positive credit
revives. All mutation goes through one asyncio.Lock, so decay ticks and
credits never lose updates.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from backend_octo.notifications.events import Event, PhaseChanged
from backend_octo.octo_logging import get_logger

logger = get_logger(__name__)


class Phase(str, Enum):
    THRIVING = "thriving"
    DEPLETING = "depleting"
    CRITICAL = "critical"
    EXTINCT = "extinct"


@dataclass(frozen=True)
class VitalityConfig:
    """Cap, phase thresholds and starting HP."""

    cap: int = 720
    thriving_above: int = 60
    critical_at_or_below: int = 14
    initial: int = 60

    def __post_init__(self) -> None:
        if not (self.thriving_above > self.critical_at_or_below > 0):
            raise ValueError("thresholds must satisfy thriving_above > critical_at_or_below > 0")
        if self.cap < self.thriving_above:
            raise ValueError("cap must be >= thriving_above")
        if not (0 <= self.initial <= self.cap):
            raise ValueError("initial must be between 0 and cap")


def phase_for(resource: int, config: VitalityConfig) -> Phase:
    if resource <= 0:
        return Phase.EXTINCT
    if resource <= config.critical_at_or_below:
        return Phase.CRITICAL
    if resource <= config.thriving_above:
        return Phase.DEPLETING
    return Phase.THRIVING


@dataclass(frozen=True)
class VitalityState:
    resource: int
    phase: Phase

    @classmethod
    def of(cls, resource: int, config: VitalityConfig) -> "VitalityState":
        resource = max(0, min(config.cap, resource))
        return cls(resource=resource, phase=phase_for(resource, config))

    def decayed(self, config: VitalityConfig, ticks: int = 1) -> "VitalityState":
        if self.phase is Phase.EXTINCT or ticks <= 0:
            return self
        return VitalityState.of(self.resource - ticks, config)

    def credited(self, amount: int, config: VitalityConfig) -> "VitalityState":
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        return VitalityState.of(self.resource + amount, config)


@dataclass(frozen=True)
class VitalitySnapshot:
    """Persisted form of the vitality state."""

    resource: int
    phase: Phase
    updated_at: float
    last_tick_at: float | None = None
    """When decay last ticked; restore catches up from here (falls back to updated_at)."""


class VitalityStateMachine:
    """Single writer of HP and phase."""

    def __init__(
        self,
        config: VitalityConfig | None = None,
        *,
        publish: Callable[[Event], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or VitalityConfig()
        self._state = VitalityState.of(self._config.initial, self._config)
        self._publish = publish
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_tick_at = self._clock()

    @property
    def config(self) -> VitalityConfig:
        return self._config

    @property
    def state(self) -> VitalityState:
        return self._state

    @property
    def resource(self) -> int:
        return self._state.resource

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def last_tick_at(self) -> float:
        return self._last_tick_at

    def seconds_until_tick(self, period_sec: float) -> float:
        return max(0.0, self._last_tick_at + period_sec - self._clock())

    def snapshot(self) -> VitalitySnapshot:
        return self._snapshot_of(self._state)

    def _snapshot_of(self, state: VitalityState) -> VitalitySnapshot:
        return VitalitySnapshot(
            resource=state.resource,
            phase=state.phase,
            updated_at=self._clock(),
            last_tick_at=self._last_tick_at,
        )

    def restore(self, snapshot: VitalitySnapshot, *, catch_up_period_sec: float | None = None) -> int:
        """
        Load a persisted state. With catch_up_period_sec, ticks missed since the
        last persisted tick are applied at once and the partial period carries
        over to the next tick. Returns the number of ticks applied.
        """
        self._state = VitalityState.of(snapshot.resource, self._config)
        now = self._clock()
        last_tick = snapshot.last_tick_at if snapshot.last_tick_at is not None else snapshot.updated_at
        missed = 0
        if catch_up_period_sec and catch_up_period_sec > 0:
            elapsed = max(0.0, now - last_tick)
            missed = int(elapsed // catch_up_period_sec)
            if missed:
                self._state = self._state.decayed(self._config, missed)
            last_tick += missed * catch_up_period_sec
        self._last_tick_at = min(now, last_tick)
        logger.info(
            "vitality_restored",
            resource=self._state.resource,
            phase=self._state.phase.value,
            missed_ticks=missed,
        )
        return missed

    async def decay(
        self,
        ticks: int = 1,
        *,
        persist: Callable[[VitalitySnapshot], None] | None = None,
    ) -> VitalityState:
        """Drain `ticks` HP (no-op once EXTINCT). persist failures are logged; memory stays authoritative."""
        async with self._lock:
            self._last_tick_at = self._clock()
            candidate = self._state.decayed(self._config, ticks)
            if candidate == self._state:
                return self._state
            self._apply(candidate, reason="decay")
            if persist is not None:
                try:
                    persist(self.snapshot())
                except Exception as e:
                    logger.warning("vitality_persist_failed", error=str(e))
            return self._state

    async def credit(
        self,
        amount: int,
        *,
        commit: Callable[[VitalitySnapshot], bool] | None = None,
    ) -> bool:
        """
        Add `amount` HP, clamped to the cap; revives EXTINCT.

        commit, if given, runs under the lock with the candidate snapshot before
        the state changes; returning False (or raising) leaves the state untouched.
        Returns True when the credit was applied.
        """
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        async with self._lock:
            candidate = self._state.credited(amount, self._config)
            if commit is not None:
                if not commit(self._snapshot_of(candidate)):
                    return False
            self._apply(candidate, reason="credit")
            return True

    def _apply(self, new: VitalityState, *, reason: str) -> None:
        old = self._state
        self._state = new
        if old.phase is not new.phase:
            logger.info(
                "vitality_phase_changed",
                old_phase=old.phase.value,
                new_phase=new.phase.value,
                resource=new.resource,
                reason=reason,
            )
            if self._publish is not None:
                self._publish(
                    PhaseChanged(
                        old_phase=old.phase.value,
                        new_phase=new.phase.value,
                        resource=new.resource,
                    )
                )


async def run_decay_loop(
    machine: VitalityStateMachine,
    period_sec: float,
    stop_event: asyncio.Event,
    *,
    persist: Callable[[VitalitySnapshot], None] | None = None,
) -> None:
    """Tick the machine once per period, counted from its last tick, until stop_event is set."""
    if period_sec <= 0:
        raise ValueError("period_sec must be positive")
    logger.info("vitality_decay_started", period_sec=period_sec)
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=machine.seconds_until_tick(period_sec))
            break
        except asyncio.TimeoutError:
            pass
        await machine.decay(persist=persist)
    logger.info("vitality_decay_stopped", resource=machine.resource)
