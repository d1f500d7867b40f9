"""Shared test helpers: config files, fee rules and row builders."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

from settlement_service.config import CurrencyConfig, FeesConfig
from settlement_service.services.ids import now_iso

if TYPE_CHECKING:
    from pathlib import Path

    from httpx import AsyncClient

POSTER_ID = "u-poster"
TASKER_ID = "u-tasker"
OTHER_BIDDER_ID = "u-bidder-2"
OUTSIDER_ID = "u-outsider"


def config_yaml(db_path: Path | str, log_directory: Path | str) -> str:
    """Complete service config pointing at temp storage, with no retry delays."""
    return f"""\
service:
  name: "settlement"
  version: "0.1.0"
server:
  host: "127.0.0.1"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_directory}"
database:
  path: "{db_path}"
request:
  max_body_size: 1024
payment_processor:
  base_url: "http://processor.test"
  create_charge_path: "/v1/charges"
  capture_path: "/v1/charges/{{intent_id}}/capture"
  cancel_path: "/v1/charges/{{intent_id}}/cancel"
  api_key: "sk-test"
  timeout_seconds: 5
  max_attempts: 3
  backoff_base_seconds: 0
notifications:
  base_url: "http://notifications.test"
  notify_path: "/notifications"
  timeout_seconds: 5
fees:
  base_currency: "USD"
  base_percentage: "0.10"
  min_fee: "5"
  max_fee: "50"
  currencies:
    USD: {{rate: "1", decimals: 2}}
    AUD: {{rate: "1.5", decimals: 2}}
    LKR: {{rate: "325", decimals: 2}}
receipts:
  number_prefix: "MT"
  issuer_name: "MyToDoo"
  retry_attempts: 2
  retry_backoff_seconds: 0
reviews:
  min_text_length: 10
  max_text_length: 500
  recent_reviews_limit: 5
"""


def fees_config(**overrides: Any) -> FeesConfig:
    """USD-based fee rules: 10%, min 5, max 50, with AUD and LKR rates."""
    values: dict[str, Any] = {
        "base_currency": "USD",
        "base_percentage": Decimal("0.10"),
        "min_fee": Decimal(5),
        "max_fee": Decimal(50),
        "currencies": {
            "USD": CurrencyConfig(rate=Decimal(1), decimals=2),
            "AUD": CurrencyConfig(rate=Decimal("1.5"), decimals=2),
            "LKR": CurrencyConfig(rate=Decimal(325), decimals=2),
        },
    }
    values.update(overrides)
    return FeesConfig(**values)


def processor_mock(intent_id: str = "pi_test_1") -> AsyncMock:
    """Payment processor double whose calls all succeed."""
    processor = AsyncMock()
    processor.create_held_charge = AsyncMock(return_value=intent_id)
    processor.capture = AsyncMock(return_value={"id": intent_id, "status": "succeeded"})
    processor.cancel = AsyncMock(return_value={"id": intent_id, "status": "canceled"})
    processor.close = AsyncMock()
    return processor


def task_row(task_id: str, status: str = "open", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "task_id": task_id,
        "poster_id": POSTER_ID,
        "title": "Assemble a bookshelf",
        "budget": 20000,
        "currency": "USD",
        "status": status,
        "assignee_id": None,
        "accepted_offer_id": None,
        "receipts_pending": 0,
        "created_at": now_iso(),
        "assigned_at": None,
        "marked_done_at": None,
        "completed_at": None,
        "cancelled_at": None,
    }
    row.update(overrides)
    return row


def offer_row(offer_id: str, task_id: str, bidder_id: str = TASKER_ID, **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "offer_id": offer_id,
        "task_id": task_id,
        "bidder_id": bidder_id,
        "amount": 20000,
        "currency": "USD",
        "message": None,
        "status": "pending",
        "created_at": now_iso(),
        "resolved_at": None,
    }
    row.update(overrides)
    return row


def payment_row(payment_id: str, task_id: str, offer_id: str, **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "payment_id": payment_id,
        "task_id": task_id,
        "offer_id": offer_id,
        "payer_id": POSTER_ID,
        "payee_id": TASKER_ID,
        "gross_amount": 22000,
        "platform_fee": 2000,
        "payee_amount": 20000,
        "currency": "USD",
        "intent_id": "pi_test_1",
        "fee_reason": "percentage_applied",
        "status": "pending",
        "cancel_pending": 0,
        "created_at": now_iso(),
        "captured_at": None,
        "cancelled_at": None,
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# HTTP flows used by router tests
# ---------------------------------------------------------------------------
async def post_task(
    client: AsyncClient, *, budget: object = "200.00", currency: str = "USD"
) -> dict[str, Any]:
    resp = await client.post(
        "/tasks",
        json={
            "poster_id": POSTER_ID,
            "title": "Assemble a bookshelf",
            "budget": budget,
            "currency": currency,
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def post_offer(
    client: AsyncClient,
    task_id: str,
    *,
    bidder_id: str = TASKER_ID,
    amount: object = "200.00",
    currency: str = "USD",
) -> dict[str, Any]:
    resp = await client.post(
        f"/tasks/{task_id}/offers",
        json={"bidder_id": bidder_id, "amount": amount, "currency": currency},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def assigned_task(client: AsyncClient) -> tuple[str, str]:
    """Create a task and accept one offer on it; returns (task_id, offer_id)."""
    task = await post_task(client)
    offer = await post_offer(client, task["task_id"])
    resp = await client.post(
        f"/tasks/{task['task_id']}/offers/{offer['offer_id']}/accept",
        json={"poster_id": POSTER_ID},
    )
    assert resp.status_code == 200, resp.text
    return task["task_id"], offer["offer_id"]


async def completed_task(client: AsyncClient) -> dict[str, Any]:
    """Drive a task through to completion; returns the complete-payment body."""
    task_id, _ = await assigned_task(client)
    resp = await client.post(f"/tasks/{task_id}/mark-done", json={"tasker_id": TASKER_ID})
    assert resp.status_code == 200, resp.text
    resp = await client.post(f"/tasks/{task_id}/complete-payment", json={"poster_id": POSTER_ID})
    assert resp.status_code == 200, resp.text
    return resp.json()
