"""
Vitality — the decaying HP resource and its life phases.
"""

from backend_octo.vitality.machine import (
    Phase,
    VitalityConfig,
    VitalitySnapshot,
    VitalityState,
    VitalityStateMachine,
    phase_for,
    run_decay_loop,
)

__all__ = [
    "Phase",
    "VitalityConfig",
    "VitalitySnapshot",
    "VitalityState",
    "VitalityStateMachine",
    "phase_for",
    "run_decay_loop",
]
