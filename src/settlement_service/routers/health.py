"""Health check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from settlement_service.core.state import get_app_state
from settlement_service.schemas import HealthResponse

router = APIRouter()

_EMPTY_STATS: dict[str, Any] = {
    "total_tasks": 0,
    "tasks_by_status": {},
    "payments_by_status": {},
    "escrow_held": {},
    "releases_pending": 0,
    "receipts_pending": 0,
}


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Service liveness plus the settlement backlog.

    ``escrow_held`` is the amount still held on posters' cards per currency.
    ``releases_pending`` counts cancelled holds the processor has not yet
    released, ``receipts_pending`` completed tasks still waiting on receipts.
    """
    state = get_app_state()
    stats = state.task_manager.get_stats() if state.task_manager is not None else _EMPTY_STATS
    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        **stats,
    )
