"""Offer intake, listing, withdrawal and acceptance endpoints."""

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
    from settlement_service.services.offer_coordinator import OfferCoordinator

router = APIRouter()


def _offer_coordinator() -> OfferCoordinator:
    state = get_app_state()
    if state.offer_coordinator is None:
        msg = "OfferCoordinator not initialized"
        raise RuntimeError(msg)
    return state.offer_coordinator


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/offers: submit offer
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/offers", status_code=201)
async def submit_offer(task_id: str, request: Request) -> JSONResponse:
    """Record a pending offer on an open task."""
    data = parse_json_body(await request.body())
    bidder_id = require_string(data, "bidder_id")
    amount = require_field(data, "amount")
    currency = require_string(data, "currency")
    message = optional_string(data, "message")

    result = await _offer_coordinator().submit_offer(task_id, bidder_id, amount, currency, message)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/offers")
async def list_offers(task_id: str) -> JSONResponse:
    """List every offer made on a task."""
    result = await _offer_coordinator().list_offers(task_id)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Offer resolution
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/offers/{offer_id}/accept")
async def accept_offer(task_id: str, offer_id: str, request: Request) -> JSONResponse:
    """Accept an offer: assign the task and hold the escrow funds."""
    data = parse_json_body(await request.body())
    poster_id = require_string(data, "poster_id")

    result = await _offer_coordinator().accept_offer(task_id, offer_id, poster_id)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/offers/{offer_id}/withdraw")
async def withdraw_offer(task_id: str, offer_id: str, request: Request) -> JSONResponse:
    """The bidder withdraws a pending offer."""
    data = parse_json_body(await request.body())
    bidder_id = require_string(data, "bidder_id")

    result = await _offer_coordinator().withdraw_offer(task_id, offer_id, bidder_id)
    return JSONResponse(status_code=200, content=result)
