"""Receipt endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from settlement_service.core.state import get_app_state
from settlement_service.errors import Forbidden, NotFound, ValidationError
from settlement_service.routers.validation import parse_pagination, require_query
from settlement_service.services.presenters import receipt_view

router = APIRouter()

_RECEIPT_TYPES = frozenset({"payment", "earnings"})


# ---------------------------------------------------------------------------
# GET /receipts/task/{task_id} must be registered before /receipts/{receipt_id}
# ---------------------------------------------------------------------------


@router.get("/receipts/task/{task_id}")
async def get_task_receipts(task_id: str) -> JSONResponse:
    """Both receipts for a task, issued on read if issuance was interrupted."""
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    result = await state.task_manager.get_task_receipts(task_id)
    return JSONResponse(status_code=200, content=result)


@router.get("/receipts")
async def list_receipts(request: Request) -> dict[str, Any]:
    """Receipts addressed to a user: payment receipts as poster, earnings as tasker."""
    user_id = require_query(request, "user_id")
    receipt_type = request.query_params.get("type")
    if receipt_type is not None and receipt_type not in _RECEIPT_TYPES:
        raise ValidationError(
            "INVALID_PAYLOAD",
            "type must be 'payment' or 'earnings'",
            {"type": receipt_type},
        )
    offset, limit = parse_pagination(request)

    state = get_app_state()
    if state.receipt_store is None or state.fee_calculator is None:
        msg = "ReceiptStore not initialized"
        raise RuntimeError(msg)

    rows, total = state.receipt_store.list_receipts_for_user(user_id, receipt_type, limit, offset)
    money = state.fee_calculator.money
    return {
        "receipts": [receipt_view(row, money) for row in rows],
        "total": total,
        "offset": offset,
        "limit": limit,
    }


def _receipt_for_party(receipt_id: str, request: Request) -> dict[str, Any]:
    user_id = require_query(request, "user_id")

    state = get_app_state()
    if state.receipt_store is None:
        msg = "ReceiptStore not initialized"
        raise RuntimeError(msg)

    receipt = state.receipt_store.get_receipt(receipt_id)
    if receipt is None:
        raise NotFound("RECEIPT_NOT_FOUND", "Receipt not found", {"receipt_id": receipt_id})
    if user_id not in (receipt["poster_id"], receipt["tasker_id"]):
        raise Forbidden("Only the task's poster or tasker can view this receipt")
    return receipt


@router.get("/receipts/{receipt_id}/download")
async def download_receipt(receipt_id: str, request: Request) -> Response:
    """The receipt as a PDF attachment, for the poster and the tasker only."""
    receipt = _receipt_for_party(receipt_id, request)

    renderer = get_app_state().receipt_renderer
    if renderer is None:
        msg = "ReceiptRenderer not initialized"
        raise RuntimeError(msg)

    return Response(
        content=renderer.render(receipt),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{renderer.filename(receipt)}"'},
    )


@router.get("/receipts/{receipt_id}")
async def get_receipt(receipt_id: str, request: Request) -> dict[str, Any]:
    """A single receipt, visible to the poster and the tasker only."""
    receipt = _receipt_for_party(receipt_id, request)

    fee_calculator = get_app_state().fee_calculator
    if fee_calculator is None:
        msg = "FeeCalculator not initialized"
        raise RuntimeError(msg)
    return receipt_view(receipt, fee_calculator.money)
