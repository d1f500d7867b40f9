"""Task intake and lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from settlement_service.core.state import get_app_state
from settlement_service.routers.validation import (
    optional_string,
    parse_json_body,
    require_field,
    require_string,
)

if TYPE_CHECKING:
    from settlement_service.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


# ---------------------------------------------------------------------------
# POST /tasks: intake a task posted elsewhere
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Record a task so its settlement can be tracked."""
    data = parse_json_body(await request.body())
    poster_id = require_string(data, "poster_id")
    title = require_string(data, "title")
    budget = require_field(data, "budget")
    currency = require_string(data, "currency")
    task_id = optional_string(data, "task_id")

    result = await _task_manager().create_task(poster_id, title, budget, currency, task_id)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> JSONResponse:
    """Task detail."""
    result = await _task_manager().get_task(task_id)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/mark-done")
async def mark_done(task_id: str, request: Request) -> JSONResponse:
    """The assigned tasker reports the work done."""
    data = parse_json_body(await request.body())
    tasker_id = require_string(data, "tasker_id")

    result = await _task_manager().mark_done(task_id, tasker_id)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/complete-payment")
async def complete_payment(task_id: str, request: Request) -> JSONResponse:
    """The poster confirms completion; escrow is captured and receipts issued."""
    data = parse_json_body(await request.body())
    poster_id = require_string(data, "poster_id")

    result = await _task_manager().complete_payment(task_id, poster_id)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> JSONResponse:
    """The poster cancels an open or assigned task."""
    data = parse_json_body(await request.body())
    poster_id = require_string(data, "poster_id")

    result = await _task_manager().cancel_task(task_id, poster_id)
    return JSONResponse(status_code=200, content=result)


@router.get("/tasks/{task_id}/payment")
async def get_payment(task_id: str) -> JSONResponse:
    """Escrow record for the task."""
    result = await _task_manager().get_payment(task_id)
    return JSONResponse(status_code=200, content=result)
