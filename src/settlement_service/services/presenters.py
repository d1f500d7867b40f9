"""Response shapes for stored rows. Money leaves the service as decimal strings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from settlement_service.services.money import MoneyFormatter


def task_view(row: dict[str, Any], money: MoneyFormatter) -> dict[str, Any]:
    return {
        "task_id": row["task_id"],
        "poster_id": row["poster_id"],
        "title": row["title"],
        "budget": money.format(row["budget"], row["currency"]),
        "currency": row["currency"],
        "status": row["status"],
        "assignee_id": row["assignee_id"],
        "accepted_offer_id": row["accepted_offer_id"],
        "receipts_pending": bool(row["receipts_pending"]),
        "created_at": row["created_at"],
        "assigned_at": row["assigned_at"],
        "marked_done_at": row["marked_done_at"],
        "completed_at": row["completed_at"],
        "cancelled_at": row["cancelled_at"],
    }


def offer_view(row: dict[str, Any], money: MoneyFormatter) -> dict[str, Any]:
    return {
        "offer_id": row["offer_id"],
        "task_id": row["task_id"],
        "bidder_id": row["bidder_id"],
        "amount": money.format(row["amount"], row["currency"]),
        "currency": row["currency"],
        "message": row["message"],
        "status": row["status"],
        "created_at": row["created_at"],
        "resolved_at": row["resolved_at"],
    }


def payment_view(row: dict[str, Any], money: MoneyFormatter) -> dict[str, Any]:
    currency = row["currency"]
    return {
        "payment_id": row["payment_id"],
        "task_id": row["task_id"],
        "offer_id": row["offer_id"],
        "payer_id": row["payer_id"],
        "payee_id": row["payee_id"],
        "gross_amount": money.format(row["gross_amount"], currency),
        "platform_fee": money.format(row["platform_fee"], currency),
        "payee_amount": money.format(row["payee_amount"], currency),
        "currency": currency,
        "intent_id": row["intent_id"],
        "fee_reason": row["fee_reason"],
        "status": row["status"],
        "cancel_pending": bool(row["cancel_pending"]),
        "created_at": row["created_at"],
        "captured_at": row["captured_at"],
        "cancelled_at": row["cancelled_at"],
    }


def receipt_view(row: dict[str, Any], money: MoneyFormatter) -> dict[str, Any]:
    currency = row["currency"]
    return {
        "receipt_id": row["receipt_id"],
        "receipt_number": row["receipt_number"],
        "receipt_type": row["receipt_type"],
        "task_id": row["task_id"],
        "offer_id": row["offer_id"],
        "payment_id": row["payment_id"],
        "poster_id": row["poster_id"],
        "tasker_id": row["tasker_id"],
        "amount": money.format(row["amount"], currency),
        "financials": {
            "offer_amount": money.format(row["offer_amount"], currency),
            "service_fee": money.format(row["service_fee"], currency),
            "total_paid": money.format(row["total_paid"], currency),
            "amount_received": money.format(row["amount_received"], currency),
            "currency": currency,
            "fee_reason": row["fee_reason"],
            "intent_id": row["intent_id"],
        },
        "task_title": row["task_title"],
        "date_completed": row["date_completed"],
        "generated_at": row["generated_at"],
    }


def review_view(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "review_id": row["review_id"],
        "task_id": row["task_id"],
        "reviewer_id": row["reviewer_id"],
        "reviewee_id": row["reviewee_id"],
        "reviewer_role": row["reviewer_role"],
        "rating": row["rating"],
        "text": row["text"],
        "created_at": row["created_at"],
    }
