"""Offer intake, withdrawal and single-winner acceptance."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from settlement_service.errors import (
    Conflict,
    Forbidden,
    NotFound,
    ServiceError,
    ValidationError,
)
from settlement_service.logging import get_logger
from settlement_service.services import lifecycle
from settlement_service.services.ids import OFFER_PREFIX, new_id, now_iso
from settlement_service.services.presenters import offer_view, payment_view, task_view
from settlement_service.services.task_store import DuplicateOfferError, TaskStateConflictError

if TYPE_CHECKING:
    from settlement_service.services.escrow_manager import EscrowManager
    from settlement_service.services.money import MoneyFormatter
    from settlement_service.services.notification_dispatcher import NotificationDispatcher
    from settlement_service.services.task_store import TaskStore

MAX_MESSAGE_LENGTH = 1000


class OfferCoordinator:
    """
    Guarantees that exactly one offer per task becomes ``accepted``.

    The escrow hold is authorized before the acceptance transaction. The
    transaction itself is conditional on the task still being open, so
    when two acceptances race only one commits; the loser's hold is
    released and the caller gets 409.
    """

    def __init__(
        self,
        store: TaskStore,
        escrow_manager: EscrowManager,
        notifier: NotificationDispatcher,
        money: MoneyFormatter,
    ) -> None:
        self._store = store
        self._escrow_manager = escrow_manager
        self._notifier = notifier
        self._money = money
        self._logger = get_logger(__name__)

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})
        return task

    async def submit_offer(
        self,
        task_id: str,
        bidder_id: str,
        amount: object,
        currency: str,
        message: str | None,
    ) -> dict[str, Any]:
        """Record a pending offer on an open task."""
        task = self._load_task(task_id)

        if currency != task["currency"]:
            raise ValidationError(
                "CURRENCY_MISMATCH",
                f"Offer currency must be {task['currency']}",
                {"task_currency": task["currency"], "offer_currency": currency},
            )
        amount_minor = self._money.to_minor_units(amount, currency, "amount")
        if amount_minor <= 0:
            raise ValidationError("INVALID_AMOUNT", "Offer amount must be positive", {})
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                "INVALID_PAYLOAD",
                f"message must be at most {MAX_MESSAGE_LENGTH} characters",
                {},
            )
        if bidder_id == task["poster_id"]:
            raise ValidationError("SELF_OFFER", "Cannot make an offer on your own task", {})
        if task["status"] != lifecycle.OPEN:
            raise Conflict(
                "TASK_NOT_OPEN",
                f"Task is '{task['status']}' and no longer accepts offers",
                {"status": task["status"]},
            )

        offer = {
            "offer_id": new_id(OFFER_PREFIX),
            "task_id": task_id,
            "bidder_id": bidder_id,
            "amount": amount_minor,
            "currency": currency,
            "message": message,
            "status": "pending",
            "created_at": now_iso(),
            "resolved_at": None,
        }
        try:
            self._store.insert_offer(offer)
        except DuplicateOfferError as exc:
            raise Conflict(
                "OFFER_ALREADY_EXISTS",
                "This bidder already has a pending offer on this task",
                {"task_id": task_id, "bidder_id": bidder_id},
            ) from exc

        self._notifier.dispatch(
            task["poster_id"],
            "offer_received",
            {"task_id": task_id, "offer_id": offer["offer_id"]},
        )
        return offer_view(offer, self._money)

    async def list_offers(self, task_id: str) -> dict[str, Any]:
        self._load_task(task_id)
        offers = self._store.list_offers(task_id)
        return {"task_id": task_id, "offers": [offer_view(row, self._money) for row in offers]}

    async def withdraw_offer(self, task_id: str, offer_id: str, bidder_id: str) -> dict[str, Any]:
        """Withdraw a pending offer. Only its bidder may do so."""
        self._load_task(task_id)
        offer = self._store.get_offer(offer_id, task_id)
        if offer is None:
            raise NotFound("OFFER_NOT_FOUND", "Offer not found", {"offer_id": offer_id})
        if offer["bidder_id"] != bidder_id:
            raise Forbidden("Only the bidder can withdraw this offer")

        updated = self._store.update_offer(
            offer_id,
            {"status": "withdrawn", "resolved_at": now_iso()},
            expected_status="pending",
        )
        if updated == 0:
            current = self._store.get_offer(offer_id, task_id) or offer
            raise Conflict(
                "OFFER_NOT_PENDING",
                f"Offer is '{current['status']}' and cannot be withdrawn",
                {"status": current["status"]},
            )

        refreshed = self._store.get_offer(offer_id, task_id)
        if refreshed is None:
            msg = f"Offer {offer_id} not found after update"
            raise RuntimeError(msg)
        return offer_view(refreshed, self._money)

    async def accept_offer(self, task_id: str, offer_id: str, poster_id: str) -> dict[str, Any]:
        """
        Accept an offer and hold the escrow funds.

        Error precedence:
        1. TASK_NOT_FOUND (404)
        2. FORBIDDEN (403), caller is not the poster
        3. TASK_ALREADY_ASSIGNED (409), task is not open
        4. OFFER_NOT_FOUND (404)
        5. OFFER_NOT_PENDING (409)
        6. DATA_INTEGRITY_ERROR (500), offer currency differs from task
        7. PAYMENT_CAPTURE_FAILED (402) / PAYMENT_PROCESSOR_UNAVAILABLE (502)
        """
        task = self._load_task(task_id)
        if poster_id != task["poster_id"]:
            raise Forbidden("Only the poster can accept offers")
        if not lifecycle.can_transition(task["status"], lifecycle.ASSIGNED):
            raise Conflict(
                "TASK_ALREADY_ASSIGNED",
                f"Task is '{task['status']}', offers can only be accepted on open tasks",
                {"status": task["status"]},
            )

        offer = self._store.get_offer(offer_id, task_id)
        if offer is None:
            raise NotFound("OFFER_NOT_FOUND", "Offer not found", {"offer_id": offer_id})
        if offer["status"] != "pending":
            raise Conflict(
                "OFFER_NOT_PENDING",
                f"Offer is '{offer['status']}' and cannot be accepted",
                {"status": offer["status"]},
            )
        if offer["currency"] != task["currency"]:
            self._logger.error(
                "Offer currency does not match task currency",
                extra={
                    "task_id": task_id,
                    "offer_id": offer_id,
                    "task_currency": task["currency"],
                    "offer_currency": offer["currency"],
                },
            )
            raise ServiceError(
                "DATA_INTEGRITY_ERROR",
                "Offer currency does not match task currency",
                500,
                {},
            )

        payment = await self._escrow_manager.authorize(task, offer)

        try:
            rejected = self._store.accept_offer(task_id, offer_id, payment, now_iso())
        except TaskStateConflictError as exc:
            # A repeated accept of the same offer reuses the authorize key, so the
            # processor hands back the winner's intent. That hold must stay.
            recorded = self._store.get_payment_for_task(task_id)
            if recorded is None or recorded["intent_id"] != payment["intent_id"]:
                await self._escrow_manager.release_unrecorded_hold(
                    payment["intent_id"], task_id, offer_id
                )
            current_offer = self._store.get_offer(offer_id, task_id)
            if current_offer is not None and current_offer["status"] != "pending":
                current_task = self._store.get_task(task_id)
                if current_task is not None and current_task["status"] == lifecycle.OPEN:
                    raise Conflict(
                        "OFFER_NOT_PENDING",
                        f"Offer is '{current_offer['status']}' and cannot be accepted",
                        {"status": current_offer["status"]},
                    ) from exc
            raise Conflict(
                "TASK_ALREADY_ASSIGNED",
                "Another offer was accepted for this task first",
                {"task_id": task_id},
            ) from exc

        self._logger.info(
            "Offer accepted",
            extra={
                "task_id": task_id,
                "offer_id": offer_id,
                "assignee_id": offer["bidder_id"],
                "payment_id": payment["payment_id"],
                "rejected_offers": len(rejected),
            },
        )

        self._notifier.dispatch(
            offer["bidder_id"],
            "offer_accepted",
            {"task_id": task_id, "offer_id": offer_id},
        )
        for lost in rejected:
            self._notifier.dispatch(
                lost["bidder_id"],
                "offer_rejected",
                {"task_id": task_id, "offer_id": lost["offer_id"]},
            )

        updated_task = self._store.get_task(task_id)
        updated_offer = self._store.get_offer(offer_id, task_id)
        stored_payment = self._store.get_payment_for_task(task_id)
        if updated_task is None or updated_offer is None or stored_payment is None:
            msg = f"Task {task_id} acceptance not found after commit"
            raise RuntimeError(msg)
        return {
            "task": task_view(updated_task, self._money),
            "offer": offer_view(updated_offer, self._money),
            "payment": payment_view(stored_payment, self._money),
        }
