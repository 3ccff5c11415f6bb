"""
Agent worker package — 24/7 background orchestration.

Runs the listener, push stream, ledger and decay timer on one event loop
and coordinates shutdown.
"""

from backend_octo.agent_worker.worker import OctoWorker, WorkerState, run_worker

__all__ = ["OctoWorker", "WorkerState", "run_worker"]
