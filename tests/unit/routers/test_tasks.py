"""Task intake and lifecycle endpoint tests."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest

from settlement_service.clients.payment_processor_client import (
    ProcessorDeclinedError,
    ProcessorUnavailableError,
)
from tests.helpers import (
    OUTSIDER_ID,
    POSTER_ID,
    TASKER_ID,
    assigned_task,
    completed_task,
    post_offer,
    post_task,
)

if TYPE_CHECKING:
    from unittest.mock import AsyncMock

    from httpx import AsyncClient


# ---------------------------------------------------------------------------
# Task intake (POST /tasks)
# ---------------------------------------------------------------------------
class TestTaskIntake:
    """Tests for POST /tasks and GET /tasks/{task_id}."""

    @pytest.mark.unit
    async def test_create_and_fetch(self, client: AsyncClient) -> None:
        task = await post_task(client, budget=150)

        assert task["budget"] == "150.00"
        assert task["status"] == "open"
        assert task["assignee_id"] is None

        resp = await client.get(f"/tasks/{task['task_id']}")
        assert resp.status_code == 200
        assert resp.json() == task

    @pytest.mark.unit
    async def test_client_supplied_id_is_kept(self, client: AsyncClient) -> None:
        task_id = f"t-{uuid.uuid4()}"
        payload = {
            "task_id": task_id,
            "poster_id": POSTER_ID,
            "title": "Fix a tap",
            "budget": "80",
            "currency": "USD",
        }
        resp = await client.post("/tasks", json=payload)
        assert resp.status_code == 201
        assert resp.json()["task_id"] == task_id

        resp = await client.post("/tasks", json=payload)
        assert resp.status_code == 409
        assert resp.json()["error"] == "TASK_ALREADY_EXISTS"

    @pytest.mark.unit
    async def test_unsupported_currency(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/tasks",
            json={"poster_id": POSTER_ID, "title": "Fix a tap", "budget": 80, "currency": "XYZ"},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "UNSUPPORTED_CURRENCY"
        assert body["details"]["supported"] == ["AUD", "LKR", "USD"]

    @pytest.mark.unit
    async def test_missing_field(self, client: AsyncClient) -> None:
        resp = await client.post("/tasks", json={"poster_id": POSTER_ID, "title": "Fix a tap"})
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "INVALID_PAYLOAD",
            "message": "Missing required field: budget",
            "details": {"field": "budget"},
        }

    @pytest.mark.unit
    @pytest.mark.parametrize("budget", ["1e30", "1e999999"])
    async def test_oversized_budget(self, client: AsyncClient, budget: str) -> None:
        resp = await client.post(
            "/tasks",
            json={"poster_id": POSTER_ID, "title": "Fix a tap", "budget": budget, "currency": "USD"},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "INVALID_AMOUNT"
        assert body["details"]["field"] == "budget"

    @pytest.mark.unit
    async def test_unknown_task(self, client: AsyncClient) -> None:
        resp = await client.get("/tasks/t-missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "TASK_NOT_FOUND"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
class TestLifecycleEndpoints:
    """mark-done, complete-payment and cancel."""

    @pytest.mark.unit
    async def test_happy_path_to_completion(self, client: AsyncClient, processor: AsyncMock) -> None:
        body = await completed_task(client)

        assert body["task"]["status"] == "completed"
        assert body["payment"]["status"] == "completed"
        assert body["payment"]["gross_amount"] == "220.00"
        assert [receipt["amount"] for receipt in body["receipts"]] == ["220.00", "200.00"]
        processor.create_held_charge.assert_awaited_once()
        processor.capture.assert_awaited_once()

    @pytest.mark.unit
    async def test_complete_payment_replay(self, client: AsyncClient, processor: AsyncMock) -> None:
        body = await completed_task(client)
        task_id = body["task"]["task_id"]

        resp = await client.post(f"/tasks/{task_id}/complete-payment", json={"poster_id": POSTER_ID})

        assert resp.status_code == 200
        assert resp.json()["receipts"] == body["receipts"]
        processor.capture.assert_awaited_once()

    @pytest.mark.unit
    async def test_mark_done_by_poster_forbidden(self, client: AsyncClient) -> None:
        task_id, _ = await assigned_task(client)
        resp = await client.post(f"/tasks/{task_id}/mark-done", json={"tasker_id": POSTER_ID})
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    @pytest.mark.unit
    async def test_complete_before_mark_done(self, client: AsyncClient) -> None:
        task_id, _ = await assigned_task(client)
        resp = await client.post(f"/tasks/{task_id}/complete-payment", json={"poster_id": POSTER_ID})
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "INVALID_STATE_TRANSITION"
        assert body["details"] == {"current_status": "assigned", "target_status": "completed"}

    @pytest.mark.unit
    async def test_declined_capture_is_402(self, client: AsyncClient, processor: AsyncMock) -> None:
        task_id, _ = await assigned_task(client)
        await client.post(f"/tasks/{task_id}/mark-done", json={"tasker_id": TASKER_ID})
        processor.capture.side_effect = ProcessorDeclinedError("insufficient funds", 402)

        resp = await client.post(f"/tasks/{task_id}/complete-payment", json={"poster_id": POSTER_ID})

        assert resp.status_code == 402
        assert resp.json()["error"] == "PAYMENT_CAPTURE_FAILED"
        task = (await client.get(f"/tasks/{task_id}")).json()
        assert task["status"] == "todo"

    @pytest.mark.unit
    async def test_processor_down_is_502(self, client: AsyncClient, processor: AsyncMock) -> None:
        task_id, _ = await assigned_task(client)
        await client.post(f"/tasks/{task_id}/mark-done", json={"tasker_id": TASKER_ID})
        processor.capture.side_effect = ProcessorUnavailableError("down")

        resp = await client.post(f"/tasks/{task_id}/complete-payment", json={"poster_id": POSTER_ID})

        assert resp.status_code == 502
        assert resp.json()["error"] == "PAYMENT_PROCESSOR_UNAVAILABLE"
        assert processor.capture.await_count == 3

    @pytest.mark.unit
    async def test_cancel_assigned_task(self, client: AsyncClient, processor: AsyncMock) -> None:
        task_id, _ = await assigned_task(client)

        resp = await client.post(f"/tasks/{task_id}/cancel", json={"poster_id": POSTER_ID})

        assert resp.status_code == 200
        body = resp.json()
        assert body["task"]["status"] == "cancelled"
        assert body["payment"]["status"] == "cancelled"
        processor.cancel.assert_awaited_once()

    @pytest.mark.unit
    async def test_cancel_open_task_has_no_payment(self, client: AsyncClient) -> None:
        task = await post_task(client)
        await post_offer(client, task["task_id"])

        resp = await client.post(f"/tasks/{task['task_id']}/cancel", json={"poster_id": POSTER_ID})

        assert resp.status_code == 200
        assert resp.json()["payment"] is None
        offers = (await client.get(f"/tasks/{task['task_id']}/offers")).json()["offers"]
        assert offers[0]["status"] == "rejected"

    @pytest.mark.unit
    async def test_cancel_by_outsider_forbidden(self, client: AsyncClient) -> None:
        task = await post_task(client)
        resp = await client.post(f"/tasks/{task['task_id']}/cancel", json={"poster_id": OUTSIDER_ID})
        assert resp.status_code == 403

    @pytest.mark.unit
    async def test_cancel_after_mark_done_rejected(self, client: AsyncClient) -> None:
        task_id, _ = await assigned_task(client)
        await client.post(f"/tasks/{task_id}/mark-done", json={"tasker_id": TASKER_ID})

        resp = await client.post(f"/tasks/{task_id}/cancel", json={"poster_id": POSTER_ID})

        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_STATE_TRANSITION"

    @pytest.mark.unit
    async def test_payment_lookup(self, client: AsyncClient) -> None:
        task = await post_task(client)
        resp = await client.get(f"/tasks/{task['task_id']}/payment")
        assert resp.status_code == 404
        assert resp.json()["error"] == "PAYMENT_NOT_FOUND"

        task_id, offer_id = await assigned_task(client)
        resp = await client.get(f"/tasks/{task_id}/payment")
        assert resp.status_code == 200
        payment = resp.json()
        assert payment["offer_id"] == offer_id
        assert payment["status"] == "pending"
        assert payment["cancel_pending"] is False
