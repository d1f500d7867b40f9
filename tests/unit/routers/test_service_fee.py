"""Service fee endpoint tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from httpx import AsyncClient


@pytest.mark.unit
async def test_calculate(client: AsyncClient) -> None:
    resp = await client.post("/service-fee/calculate", json={"amount": "200.00", "currency": "USD"})

    assert resp.status_code == 200
    assert resp.json() == {
        "budget": "200.00",
        "service_fee": "20.00",
        "total_charge": "220.00",
        "currency": "USD",
        "breakdown": {
            "reason": "percentage_applied",
            "base_percentage": "0.10",
            "calculated_fee": "20.00",
            "min_fee": "5.00",
            "max_fee": "50.00",
        },
    }


@pytest.mark.unit
async def test_calculate_converts_bounds(client: AsyncClient) -> None:
    resp = await client.post("/service-fee/calculate", json={"amount": 1000, "currency": "AUD"})

    body = resp.json()
    assert body["service_fee"] == "75.00"
    assert body["breakdown"]["reason"] == "maximum_fee_capped"


@pytest.mark.unit
async def test_calculate_unsupported_currency(client: AsyncClient) -> None:
    resp = await client.post("/service-fee/calculate", json={"amount": 10, "currency": "JPY"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "UNSUPPORTED_CURRENCY"


@pytest.mark.unit
@pytest.mark.parametrize("amount", ["-1", "abc", "1.005", []])
async def test_calculate_invalid_amount(client: AsyncClient, amount: object) -> None:
    resp = await client.post("/service-fee/calculate", json={"amount": amount, "currency": "USD"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_config(client: AsyncClient) -> None:
    resp = await client.get("/service-fee/config")

    assert resp.status_code == 200
    body = resp.json()
    assert body["base_currency"] == "USD"
    assert sorted(body["currencies"]) == ["AUD", "LKR", "USD"]
    assert body["currencies"]["LKR"] == {
        "exchange_rate": "325",
        "min_fee": "1625.00",
        "max_fee": "16250.00",
    }
