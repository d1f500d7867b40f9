"""Review submission and rating statistics endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from settlement_service.core.state import get_app_state
from settlement_service.routers.validation import (
    optional_string,
    parse_json_body,
    parse_pagination,
    require_field,
    require_query,
    require_string,
)

if TYPE_CHECKING:
    from settlement_service.services.review_service import ReviewService

router = APIRouter()


def _review_service() -> ReviewService:
    state = get_app_state()
    if state.review_service is None:
        msg = "ReviewService not initialized"
        raise RuntimeError(msg)
    return state.review_service


@router.post("/users/{user_id}/reviews", status_code=201)
async def create_review(user_id: str, request: Request) -> JSONResponse:
    """Review the other participant of a completed task."""
    data = parse_json_body(await request.body())
    task_id = require_string(data, "task_id")
    reviewer_id = require_string(data, "reviewer_id")
    rating = require_field(data, "rating")
    text = require_string(data, "text")
    reviewer_role = optional_string(data, "reviewer_role")

    result = await _review_service().create_review(
        reviewee_id=user_id,
        task_id=task_id,
        reviewer_id=reviewer_id,
        rating=rating,
        text=text,
        reviewer_role=reviewer_role,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/users/{user_id}/reviews")
async def list_user_reviews(user_id: str, request: Request) -> JSONResponse:
    """Visible reviews a user received, optionally filtered by the role they played."""
    offset, limit = parse_pagination(request)
    role = request.query_params.get("role")

    result = await _review_service().list_user_reviews(user_id, role, offset, limit)
    return JSONResponse(status_code=200, content=result)


@router.get("/users/{user_id}/can-review")
async def can_review(user_id: str, request: Request) -> JSONResponse:
    """Whether a participant of a task may still review the other one."""
    task_id = require_query(request, "task_id")
    reviewer_id = require_query(request, "reviewer_id")

    result = await _review_service().check_eligibility(user_id, task_id, reviewer_id)
    return JSONResponse(status_code=200, content=result)


@router.get("/users/{user_id}/rating-stats")
async def get_rating_stats(user_id: str) -> JSONResponse:
    """Overall, as-poster and as-tasker aggregates plus recent reviews."""
    result = await _review_service().get_rating_stats(user_id)
    return JSONResponse(status_code=200, content=result)


@router.get("/tasks/{task_id}/reviews")
async def list_task_reviews(task_id: str) -> JSONResponse:
    """Reviews written for a task."""
    result = await _review_service().list_task_reviews(task_id)
    return JSONResponse(status_code=200, content=result)
