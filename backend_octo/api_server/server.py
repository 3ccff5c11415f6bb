"""
FastAPI server: read-mostly status API over the running worker.

GET /state for HP and phase, GET /donations for processed transfers,
GET /events for recent notifications, POST /check to run the
fetch-and-diff routine immediately. The lifespan starts the worker as a
background task unless OCTO_DISABLE_WORKER is set.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from backend_octo.agent_worker.worker import OctoWorker
from backend_octo.config.settings import get_settings
from backend_octo.core.exceptions import StoreUnavailable
from backend_octo.octo_logging import get_logger
from backend_octo.solana_listener.models import LAMPORTS_PER_SOL
from backend_octo.vitality.machine import Phase

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class StateResponse(BaseModel):
    """GET /state response: current vitality and pipeline status."""

    wallet: str = Field(..., description="Monitored wallet (base58)")
    hp: int = Field(..., ge=0, description="Remaining HP (1 HP = one decay period)")
    max_hp: int = Field(..., description="HP cap")
    phase: str = Field(..., description="thriving | depleting | critical | extinct")
    is_dead: bool = Field(..., description="True while phase is extinct")
    decay_period_sec: float
    push: str = Field(..., description="disabled | connecting | connected | abandoned")
    pending_retries: int = Field(0, description="Transfers waiting for the ledger to come back")
    last_check_at: float | None = None
    balance_sol: str | None = None
    donation_table: list[dict[str, Any]] = Field(default_factory=list)


class DonationResponse(BaseModel):
    signature: str
    amount_sol: str
    credit_amount: int
    counterparty: str
    observed_at: int
    credited_at: int


class CheckResponse(BaseModel):
    """POST /check response."""

    dispatched: int = Field(..., description="Transfers handed to the ledger by this check")
    hp: int
    phase: str


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def _worker_disabled() -> bool:
    return (os.getenv("OCTO_DISABLE_WORKER") or "").strip().lower() in ("1", "true", "yes", "on")


def _worker(request: Request) -> OctoWorker:
    return request.app.state.worker


def create_app(worker: OctoWorker | None = None, *, run_worker: bool | None = None) -> FastAPI:
    """
    Build the API. Without a worker one is created from get_settings() at startup.
    run_worker=None defers to OCTO_DISABLE_WORKER.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        w = worker or OctoWorker(get_settings())
        app.state.worker = w
        start = (not _worker_disabled()) if run_worker is None else run_worker
        task: asyncio.Task[None] | None = None
        if start:
            task = asyncio.create_task(w.run(), name="octo-worker")
            logger.info("api_worker_started", wallet_id=w.settings.wallet_address)
        try:
            yield
        finally:
            if task is not None:
                w.stop()
                await asyncio.gather(task, return_exceptions=True)
                logger.info("api_worker_stopped")

    app = FastAPI(title="Backend Octo", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/state", response_model=StateResponse)
    def get_state(request: Request) -> StateResponse:
        w = _worker(request)
        balance = w.state.last_balance_lamports
        return StateResponse(
            wallet=w.settings.wallet_address,
            hp=w.vitality.resource,
            max_hp=w.vitality.config.cap,
            phase=w.vitality.phase.value,
            is_dead=w.vitality.phase is Phase.EXTINCT,
            decay_period_sec=w.settings.decay_period_sec,
            push=w.push_status(),
            pending_retries=w.listener.pending_count,
            last_check_at=w.listener.last_check_at,
            balance_sol=str(Decimal(balance) / LAMPORTS_PER_SOL) if balance is not None else None,
            donation_table=w.ledger.exchange.table(),
        )

    @app.get("/donations", response_model=list[DonationResponse])
    def list_donations(
        request: Request,
        limit: int = Query(50, ge=1, le=500),
    ) -> list[DonationResponse]:
        w = _worker(request)
        try:
            records = w.store.list_processed(limit=limit)
        except StoreUnavailable as e:
            logger.error("api_store_unavailable", error=str(e))
            raise HTTPException(status_code=503, detail="donation store unavailable") from e
        return [
            DonationResponse(
                signature=r.signature,
                amount_sol=str(r.amount_sol),
                credit_amount=r.credit_amount,
                counterparty=r.counterparty,
                observed_at=r.observed_at,
                credited_at=r.credited_at,
            )
            for r in records
        ]

    @app.get("/events")
    def recent_events(
        request: Request,
        limit: int = Query(20, ge=1, le=100),
    ) -> list[dict[str, Any]]:
        return [e.to_dict() for e in _worker(request).hub.recent(limit)]

    @app.post("/check", response_model=CheckResponse)
    async def check(request: Request) -> CheckResponse:
        w = _worker(request)
        dispatched = await w.listener.check_now("manual")
        return CheckResponse(
            dispatched=dispatched,
            hp=w.vitality.resource,
            phase=w.vitality.phase.value,
        )

    return app


app = create_app()
