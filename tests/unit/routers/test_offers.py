"""Offer endpoint tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from settlement_service.clients.payment_processor_client import ProcessorDeclinedError
from tests.helpers import OTHER_BIDDER_ID, POSTER_ID, TASKER_ID, post_offer, post_task

if TYPE_CHECKING:
    from unittest.mock import AsyncMock

    from httpx import AsyncClient


class TestOfferIntake:
    """POST/GET /tasks/{task_id}/offers."""

    @pytest.mark.unit
    async def test_submit_and_list(self, client: AsyncClient, notifications: AsyncMock) -> None:
        task = await post_task(client)
        offer = await post_offer(client, task["task_id"], amount=175)

        assert offer["amount"] == "175.00"
        assert offer["status"] == "pending"

        resp = await client.get(f"/tasks/{task['task_id']}/offers")
        assert resp.status_code == 200
        assert resp.json() == {"task_id": task["task_id"], "offers": [offer]}

        await asyncio.sleep(0)
        notifications.notify.assert_any_await(
            POSTER_ID,
            "offer_received",
            {"task_id": task["task_id"], "offer_id": offer["offer_id"]},
        )

    @pytest.mark.unit
    async def test_currency_mismatch(self, client: AsyncClient) -> None:
        task = await post_task(client)
        resp = await client.post(
            f"/tasks/{task['task_id']}/offers",
            json={"bidder_id": TASKER_ID, "amount": 100, "currency": "AUD"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "CURRENCY_MISMATCH"

    @pytest.mark.unit
    async def test_duplicate_pending_offer(self, client: AsyncClient) -> None:
        task = await post_task(client)
        await post_offer(client, task["task_id"])
        resp = await client.post(
            f"/tasks/{task['task_id']}/offers",
            json={"bidder_id": TASKER_ID, "amount": 90, "currency": "USD"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "OFFER_ALREADY_EXISTS"

    @pytest.mark.unit
    async def test_offers_on_unknown_task(self, client: AsyncClient) -> None:
        resp = await client.get("/tasks/t-missing/offers")
        assert resp.status_code == 404

    @pytest.mark.unit
    async def test_withdraw(self, client: AsyncClient) -> None:
        task = await post_task(client)
        offer = await post_offer(client, task["task_id"])
        url = f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/withdraw"

        resp = await client.post(url, json={"bidder_id": POSTER_ID})
        assert resp.status_code == 403

        resp = await client.post(url, json={"bidder_id": TASKER_ID})
        assert resp.status_code == 200
        assert resp.json()["status"] == "withdrawn"


class TestAcceptance:
    """POST /tasks/{task_id}/offers/{offer_id}/accept."""

    @pytest.mark.unit
    async def test_accept(self, client: AsyncClient, processor: AsyncMock) -> None:
        task = await post_task(client)
        offer = await post_offer(client, task["task_id"], amount="30.00")

        resp = await client.post(
            f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/accept",
            json={"poster_id": POSTER_ID},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["task"]["status"] == "assigned"
        assert body["offer"]["status"] == "accepted"
        assert body["payment"]["platform_fee"] == "5.00"
        assert body["payment"]["gross_amount"] == "35.00"
        assert body["payment"]["fee_reason"] == "minimum_fee_applied"
        assert processor.create_held_charge.await_args.kwargs["amount"] == 3500

    @pytest.mark.unit
    async def test_accept_by_non_poster(self, client: AsyncClient) -> None:
        task = await post_task(client)
        offer = await post_offer(client, task["task_id"])
        resp = await client.post(
            f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/accept",
            json={"poster_id": TASKER_ID},
        )
        assert resp.status_code == 403

    @pytest.mark.unit
    async def test_declined_hold(self, client: AsyncClient, processor: AsyncMock) -> None:
        processor.create_held_charge.side_effect = ProcessorDeclinedError("declined", 402)
        task = await post_task(client)
        offer = await post_offer(client, task["task_id"])

        resp = await client.post(
            f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/accept",
            json={"poster_id": POSTER_ID},
        )

        assert resp.status_code == 402
        assert (await client.get(f"/tasks/{task['task_id']}")).json()["status"] == "open"

    @pytest.mark.unit
    async def test_second_acceptance_conflicts(self, client: AsyncClient) -> None:
        task = await post_task(client)
        first = await post_offer(client, task["task_id"])
        second = await post_offer(client, task["task_id"], bidder_id=OTHER_BIDDER_ID)

        resp = await client.post(
            f"/tasks/{task['task_id']}/offers/{first['offer_id']}/accept",
            json={"poster_id": POSTER_ID},
        )
        assert resp.status_code == 200

        resp = await client.post(
            f"/tasks/{task['task_id']}/offers/{second['offer_id']}/accept",
            json={"poster_id": POSTER_ID},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "TASK_ALREADY_ASSIGNED"

    @pytest.mark.unit
    async def test_concurrent_acceptances(self, client: AsyncClient, processor: AsyncMock) -> None:
        async def slow_hold(**_kwargs):
            await asyncio.sleep(0.01)
            return "pi_race"

        processor.create_held_charge.side_effect = slow_hold
        task = await post_task(client)
        first = await post_offer(client, task["task_id"])
        second = await post_offer(client, task["task_id"], bidder_id=OTHER_BIDDER_ID)

        responses = await asyncio.gather(
            *(
                client.post(
                    f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/accept",
                    json={"poster_id": POSTER_ID},
                )
                for offer in (first, second)
            )
        )

        assert sorted(resp.status_code for resp in responses) == [200, 409]
        offers = (await client.get(f"/tasks/{task['task_id']}/offers")).json()["offers"]
        assert [offer["status"] for offer in offers].count("accepted") == 1
