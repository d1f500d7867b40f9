"""Receipt endpoint tests."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest

from tests.helpers import OUTSIDER_ID, POSTER_ID, TASKER_ID, assigned_task, completed_task

if TYPE_CHECKING:
    from httpx import AsyncClient

RECEIPT_NUMBER = re.compile(r"^MT\d{8}-\d{6}$")


class TestTaskReceipts:
    """GET /receipts/task/{task_id}."""

    @pytest.mark.unit
    async def test_both_receipts(self, client: AsyncClient) -> None:
        body = await completed_task(client)
        task_id = body["task"]["task_id"]

        resp = await client.get(f"/receipts/task/{task_id}")

        assert resp.status_code == 200
        receipts = resp.json()["receipts"]
        assert [receipt["receipt_type"] for receipt in receipts] == ["payment", "earnings"]
        assert all(RECEIPT_NUMBER.match(receipt["receipt_number"]) for receipt in receipts)
        financials = receipts[0]["financials"]
        assert financials["offer_amount"] == "200.00"
        assert financials["service_fee"] == "20.00"
        assert financials["total_paid"] == "220.00"
        assert financials["amount_received"] == "200.00"
        assert financials["fee_reason"] == "percentage_applied"

    @pytest.mark.unit
    async def test_numbers_are_unique_across_tasks(self, client: AsyncClient) -> None:
        first = await completed_task(client)
        second = await completed_task(client)

        numbers = [r["receipt_number"] for r in first["receipts"] + second["receipts"]]
        assert len(set(numbers)) == 4

    @pytest.mark.unit
    async def test_no_receipts_before_completion(self, client: AsyncClient) -> None:
        task_id, _ = await assigned_task(client)
        resp = await client.get(f"/receipts/task/{task_id}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "RECEIPTS_NOT_FOUND"


class TestReceiptLookup:
    """GET /receipts and GET /receipts/{receipt_id}."""

    @pytest.mark.unit
    async def test_poster_sees_payment_receipts(self, client: AsyncClient) -> None:
        await completed_task(client)

        resp = await client.get("/receipts", params={"user_id": POSTER_ID})

        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        assert body["receipts"][0]["receipt_type"] == "payment"
        assert body["receipts"][0]["amount"] == "220.00"

    @pytest.mark.unit
    async def test_tasker_sees_earnings_receipts(self, client: AsyncClient) -> None:
        await completed_task(client)

        resp = await client.get("/receipts", params={"user_id": TASKER_ID, "type": "earnings"})

        body = resp.json()
        assert body["total"] == 1
        assert body["receipts"][0]["amount"] == "200.00"

        resp = await client.get("/receipts", params={"user_id": TASKER_ID, "type": "payment"})
        assert resp.json()["total"] == 0

    @pytest.mark.unit
    async def test_pagination(self, client: AsyncClient) -> None:
        for _ in range(3):
            await completed_task(client)

        resp = await client.get("/receipts", params={"user_id": POSTER_ID, "limit": 2, "offset": 1})

        body = resp.json()
        assert body["total"] == 3
        assert len(body["receipts"]) == 2
        assert (body["offset"], body["limit"]) == (1, 2)

    @pytest.mark.unit
    @pytest.mark.parametrize("offset", ["99999999999999999999", "1000000001", "-1", "two"])
    async def test_out_of_range_offset(self, client: AsyncClient, offset: str) -> None:
        resp = await client.get("/receipts", params={"user_id": POSTER_ID, "offset": offset})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_PAYLOAD"

    @pytest.mark.unit
    async def test_oversized_limit_is_capped(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/receipts", params={"user_id": POSTER_ID, "limit": "99999999999999999999"}
        )
        assert resp.status_code == 200
        assert resp.json()["limit"] == 100

    @pytest.mark.unit
    async def test_listing_requires_user(self, client: AsyncClient) -> None:
        resp = await client.get("/receipts")
        assert resp.status_code == 400
        assert resp.json()["details"] == {"field": "user_id"}

    @pytest.mark.unit
    async def test_listing_rejects_unknown_type(self, client: AsyncClient) -> None:
        resp = await client.get("/receipts", params={"user_id": POSTER_ID, "type": "refund"})
        assert resp.status_code == 400

    @pytest.mark.unit
    async def test_get_by_id(self, client: AsyncClient) -> None:
        body = await completed_task(client)
        receipt = body["receipts"][1]
        url = f"/receipts/{receipt['receipt_id']}"

        for user_id in (POSTER_ID, TASKER_ID):
            resp = await client.get(url, params={"user_id": user_id})
            assert resp.status_code == 200
            assert resp.json() == receipt

        resp = await client.get(url, params={"user_id": OUTSIDER_ID})
        assert resp.status_code == 403

    @pytest.mark.unit
    async def test_unknown_receipt(self, client: AsyncClient) -> None:
        resp = await client.get("/receipts/r-missing", params={"user_id": POSTER_ID})
        assert resp.status_code == 404
        assert resp.json()["error"] == "RECEIPT_NOT_FOUND"


class TestReceiptDownload:
    """GET /receipts/{receipt_id}/download."""

    @pytest.mark.unit
    async def test_pdf_attachment(self, client: AsyncClient) -> None:
        body = await completed_task(client)
        receipt = body["receipts"][0]

        resp = await client.get(
            f"/receipts/{receipt['receipt_id']}/download", params={"user_id": POSTER_ID}
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"] == (
            f'attachment; filename="receipt-{receipt["receipt_number"]}.pdf"'
        )
        assert resp.content.startswith(b"%PDF-")

    @pytest.mark.unit
    async def test_same_receipt_renders_identically(self, client: AsyncClient) -> None:
        body = await completed_task(client)
        url = f"/receipts/{body['receipts'][1]['receipt_id']}/download"

        first = await client.get(url, params={"user_id": TASKER_ID})
        second = await client.get(url, params={"user_id": POSTER_ID})

        assert first.content == second.content

    @pytest.mark.unit
    async def test_outsider_cannot_download(self, client: AsyncClient) -> None:
        body = await completed_task(client)
        resp = await client.get(
            f"/receipts/{body['receipts'][0]['receipt_id']}/download",
            params={"user_id": OUTSIDER_ID},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    @pytest.mark.unit
    async def test_unknown_receipt(self, client: AsyncClient) -> None:
        resp = await client.get("/receipts/r-missing/download", params={"user_id": POSTER_ID})
        assert resp.status_code == 404
        assert resp.json()["error"] == "RECEIPT_NOT_FOUND"

    @pytest.mark.unit
    async def test_requires_user(self, client: AsyncClient) -> None:
        resp = await client.get("/receipts/r-missing/download")
        assert resp.status_code == 400
        assert resp.json()["details"] == {"field": "user_id"}
