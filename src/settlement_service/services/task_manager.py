"""Task intake and lifecycle actions: mark done, complete with payment, cancel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from settlement_service.errors import Conflict, Forbidden, NotFound, ServiceError, ValidationError
from settlement_service.logging import get_logger
from settlement_service.services import lifecycle
from settlement_service.services.ids import TASK_PREFIX, is_task_id, new_id, now_iso
from settlement_service.services.presenters import payment_view, receipt_view, task_view
from settlement_service.services.task_store import DuplicateTaskError, TaskStateConflictError

if TYPE_CHECKING:
    from settlement_service.services.escrow_manager import EscrowManager
    from settlement_service.services.money import MoneyFormatter
    from settlement_service.services.notification_dispatcher import NotificationDispatcher
    from settlement_service.services.receipt_issuer import ReceiptIssuer
    from settlement_service.services.task_store import TaskStore

MAX_TITLE_LENGTH = 200


class TaskManager:
    """
    Drives a task through open -> assigned -> todo -> completed, or to
    cancelled.

    Acceptance (open -> assigned) belongs to OfferCoordinator. Completion
    captures the escrow and then issues receipts; cancellation releases
    any held funds.
    """

    def __init__(
        self,
        store: TaskStore,
        escrow_manager: EscrowManager,
        receipt_issuer: ReceiptIssuer,
        notifier: NotificationDispatcher,
        money: MoneyFormatter,
    ) -> None:
        self._store = store
        self._escrow_manager = escrow_manager
        self._receipt_issuer = receipt_issuer
        self._notifier = notifier
        self._money = money
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})
        return task

    def _reload_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return task

    def _require_payment(self, task: dict[str, Any]) -> dict[str, Any]:
        payment = self._store.get_payment_for_task(task["task_id"])
        if payment is None:
            self._logger.error(
                "Assigned task has no escrow payment",
                extra={"task_id": task["task_id"], "status": task["status"]},
            )
            raise ServiceError(
                "DATA_INTEGRITY_ERROR",
                "Task has no escrow payment record",
                500,
                {},
            )
        return payment

    def _completion_result(
        self,
        task: dict[str, Any],
        payment: dict[str, Any],
        receipts: list[dict[str, Any]],
    ) -> dict[str, Any]:
        return {
            "task": task_view(task, self._money),
            "payment": payment_view(payment, self._money),
            "receipts": [receipt_view(receipt, self._money) for receipt in receipts],
        }

    # ------------------------------------------------------------------
    # Intake and reads
    # ------------------------------------------------------------------

    async def create_task(
        self,
        poster_id: str,
        title: str,
        budget: object,
        currency: str,
        task_id: str | None,
    ) -> dict[str, Any]:
        """Record a task posted elsewhere so it can be settled here."""
        if not title.strip() or len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                "INVALID_PAYLOAD",
                f"title must be 1-{MAX_TITLE_LENGTH} characters",
                {},
            )
        if not self._money.is_supported(currency):
            raise ValidationError(
                "UNSUPPORTED_CURRENCY",
                f"Currency {currency} is not supported",
                {"supported": self._money.currencies},
            )
        budget_minor = self._money.to_minor_units(budget, currency, "budget")
        if budget_minor < 0:
            raise ValidationError("INVALID_AMOUNT", "budget must not be negative", {})
        if task_id is not None and not is_task_id(task_id):
            raise ValidationError(
                "INVALID_PAYLOAD",
                "task_id must have the form t-<uuid4>",
                {"task_id": task_id},
            )

        task = {
            "task_id": task_id if task_id is not None else new_id(TASK_PREFIX),
            "poster_id": poster_id,
            "title": title.strip(),
            "budget": budget_minor,
            "currency": currency,
            "status": lifecycle.OPEN,
            "assignee_id": None,
            "accepted_offer_id": None,
            "receipts_pending": 0,
            "created_at": now_iso(),
            "assigned_at": None,
            "marked_done_at": None,
            "completed_at": None,
            "cancelled_at": None,
        }
        try:
            self._store.insert_task(task)
        except DuplicateTaskError as exc:
            raise Conflict(
                "TASK_ALREADY_EXISTS",
                "A task with this task_id already exists",
                {"task_id": task["task_id"]},
            ) from exc

        self._logger.info(
            "Task recorded",
            extra={"task_id": task["task_id"], "poster_id": poster_id, "currency": currency},
        )
        return task_view(task, self._money)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Task detail. A cancelled task with a pending escrow release retries it here."""
        task = self._load_task(task_id)
        if task["status"] == lifecycle.CANCELLED:
            payment = self._store.get_payment_for_task(task_id)
            if payment is not None and payment["cancel_pending"]:
                await self._escrow_manager.retry_pending_cancel(payment)
        return task_view(task, self._money)

    async def get_payment(self, task_id: str) -> dict[str, Any]:
        task = self._load_task(task_id)
        payment = self._store.get_payment_for_task(task_id)
        if payment is None:
            raise NotFound(
                "PAYMENT_NOT_FOUND",
                "No escrow payment exists for this task",
                {"task_id": task_id, "status": task["status"]},
            )
        if task["status"] == lifecycle.CANCELLED and payment["cancel_pending"]:
            payment = await self._escrow_manager.retry_pending_cancel(payment)
        return payment_view(payment, self._money)

    def get_stats(self) -> dict[str, Any]:
        """Task counts plus the escrow position, with held amounts formatted per currency."""
        by_status = self._store.count_tasks_by_status()
        escrow = self._store.summarize_payments()
        return {
            "total_tasks": sum(by_status.values()),
            "tasks_by_status": by_status,
            "payments_by_status": escrow["payments_by_status"],
            "escrow_held": {
                currency: self._money.format(amount, currency)
                for currency, amount in escrow["held_by_currency"].items()
            },
            "releases_pending": escrow["releases_pending"],
            "receipts_pending": escrow["receipts_pending"],
        }

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    async def mark_done(self, task_id: str, tasker_id: str) -> dict[str, Any]:
        """The assignee reports the work done (assigned -> todo). No funds move."""
        task = self._load_task(task_id)
        lifecycle.require_transition(
            task["status"], lifecycle.TODO, lifecycle.actor_for(task, tasker_id)
        )

        updated = self._store.update_task(
            task_id,
            {"status": lifecycle.TODO, "marked_done_at": now_iso()},
            expected_status=lifecycle.ASSIGNED,
        )
        if updated == 0:
            current = self._reload_task(task_id)
            raise _state_changed(current["status"], lifecycle.TODO)

        task = self._reload_task(task_id)
        self._notifier.dispatch(task["poster_id"], "task_marked_done", {"task_id": task_id})
        return task_view(task, self._money)

    async def complete_payment(self, task_id: str, poster_id: str) -> dict[str, Any]:
        """
        The poster confirms completion (todo -> completed).

        Captures the escrow, then issues receipts. Replaying on a completed
        task returns the same result without a second capture.

        Raises:
            PaymentDeclined: processor refused the capture, task stays todo
            PaymentProcessorError: processor unavailable, task stays todo
        """
        task = self._load_task(task_id)
        actor = lifecycle.actor_for(task, poster_id)

        if task["status"] == lifecycle.COMPLETED:
            if actor != lifecycle.POSTER:
                raise Forbidden("Only the poster can confirm completion")
            payment = self._require_payment(task)
            receipts = await self._receipt_issuer.heal(task)
            return self._completion_result(self._reload_task(task_id), payment, receipts)

        lifecycle.require_transition(task["status"], lifecycle.COMPLETED, actor)
        payment = await self._escrow_manager.capture(self._require_payment(task))

        updated = self._store.update_task(
            task_id,
            {
                "status": lifecycle.COMPLETED,
                "completed_at": now_iso(),
                "receipts_pending": 1,
            },
            expected_status=lifecycle.TODO,
        )
        if updated == 0:
            # A parallel confirmation of the same task committed first
            current = self._reload_task(task_id)
            if current["status"] != lifecycle.COMPLETED:
                raise _state_changed(current["status"], lifecycle.COMPLETED)
        else:
            self._logger.info(
                "Task completed",
                extra={"task_id": task_id, "payment_id": payment["payment_id"]},
            )
            for user_id, event in (
                (task["poster_id"], "payment_captured"),
                (task["assignee_id"], "payment_released"),
            ):
                self._notifier.dispatch(user_id, event, {"task_id": task_id})

        receipts = await self._receipt_issuer.issue_after_completion(task_id)

        return self._completion_result(self._reload_task(task_id), payment, receipts)

    async def cancel_task(self, task_id: str, poster_id: str) -> dict[str, Any]:
        """
        The poster cancels an open or assigned task.

        The cancellation is committed first, with a held payment flagged
        ``cancel_pending`` in the same transaction. Only then is the hold
        released; if the processor cannot be reached the flag stays set and
        the release is retried on later reads.
        """
        task = self._load_task(task_id)
        lifecycle.require_transition(
            task["status"], lifecycle.CANCELLED, lifecycle.actor_for(task, poster_id)
        )

        payment = self._store.get_payment_for_task(task_id)
        holds_funds = payment is not None and payment["status"] == "pending"

        try:
            rejected = self._store.cancel_task(
                task_id,
                expected_status=task["status"],
                cancelled_at=now_iso(),
                payment_updates={"cancel_pending": 1} if holds_funds else None,
            )
        except TaskStateConflictError as exc:
            current = self._reload_task(task_id)
            raise _state_changed(current["status"], lifecycle.CANCELLED) from exc

        if payment is not None and holds_funds:
            payment = await self._escrow_manager.release({**payment, "cancel_pending": 1})

        self._logger.info(
            "Task cancelled",
            extra={
                "task_id": task_id,
                "previous_status": task["status"],
                "cancel_pending": bool(payment is not None and payment["cancel_pending"]),
            },
        )

        if task["assignee_id"] is not None:
            self._notifier.dispatch(task["assignee_id"], "task_cancelled", {"task_id": task_id})
        for offer in rejected:
            self._notifier.dispatch(
                offer["bidder_id"],
                "offer_rejected",
                {"task_id": task_id, "offer_id": offer["offer_id"]},
            )

        cancelled = self._reload_task(task_id)
        result: dict[str, Any] = {"task": task_view(cancelled, self._money), "payment": None}
        refreshed_payment = self._store.get_payment_for_task(task_id)
        if refreshed_payment is not None:
            result["payment"] = payment_view(refreshed_payment, self._money)
        return result

    async def get_task_receipts(self, task_id: str) -> dict[str, Any]:
        """Both receipts for a task, issuing them first if issuance was interrupted."""
        task = self._load_task(task_id)
        receipts = await self._receipt_issuer.heal(task)
        if not receipts:
            raise NotFound(
                "RECEIPTS_NOT_FOUND",
                "No receipts exist for this task",
                {"task_id": task_id, "status": task["status"]},
            )
        return {
            "task_id": task_id,
            "receipts": [receipt_view(receipt, self._money) for receipt in receipts],
        }


def _state_changed(current: str, target: str) -> Conflict:
    """The task changed state between the check and the conditional write."""
    return Conflict(
        "TASK_STATE_CHANGED",
        f"Task moved to '{current}' while moving it to '{target}'",
        {"current_status": current, "target_status": target},
    )
