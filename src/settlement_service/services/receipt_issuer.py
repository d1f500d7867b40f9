"""Idempotent issuance of the payment and earnings receipts for a task."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from settlement_service.errors import Conflict, NotFound, ServiceError
from settlement_service.logging import get_logger
from settlement_service.services.ids import RECEIPT_PREFIX, new_id, now_iso
from settlement_service.services.receipt_store import DuplicateReceiptError

if TYPE_CHECKING:
    from settlement_service.services.receipt_store import ReceiptStore
    from settlement_service.services.task_store import TaskStore

RECEIPT_TYPES: tuple[str, ...] = ("payment", "earnings")


class ReceiptIssuer:
    """
    Materializes one ``payment`` receipt (poster) and one ``earnings``
    receipt (tasker) per completed task.

    Re-issuing returns the stored receipts unchanged. When issuance fails
    after a capture the task keeps its ``receipts_pending`` flag and a
    background retry is scheduled.
    """

    def __init__(
        self,
        task_store: TaskStore,
        receipt_store: ReceiptStore,
        number_prefix: str,
        retry_attempts: int,
        retry_backoff_seconds: float,
    ) -> None:
        self._task_store = task_store
        self._receipt_store = receipt_store
        self._number_prefix = number_prefix
        self._retry_attempts = retry_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._retries: dict[str, asyncio.Task[None]] = {}
        self._logger = get_logger(__name__)

    def format_receipt_number(self, sequence: int) -> str:
        """``MT20261019-000042``: prefix, UTC issue date, six-digit global sequence."""
        day = datetime.now(UTC).strftime("%Y%m%d")
        return f"{self._number_prefix}{day}-{sequence:06d}"

    def _build_receipt(
        self,
        receipt_type: str,
        task: dict[str, Any],
        payment: dict[str, Any],
        generated_at: str,
    ) -> dict[str, Any]:
        amount = payment["gross_amount"] if receipt_type == "payment" else payment["payee_amount"]
        return {
            "receipt_id": new_id(RECEIPT_PREFIX),
            "receipt_type": receipt_type,
            "task_id": task["task_id"],
            "offer_id": payment["offer_id"],
            "payment_id": payment["payment_id"],
            "poster_id": payment["payer_id"],
            "tasker_id": payment["payee_id"],
            "amount": amount,
            "offer_amount": payment["payee_amount"],
            "service_fee": payment["platform_fee"],
            "total_paid": payment["gross_amount"],
            "amount_received": payment["payee_amount"],
            "currency": payment["currency"],
            "intent_id": payment["intent_id"],
            "fee_reason": payment["fee_reason"],
            "task_title": task["title"],
            "date_completed": task["completed_at"],
            "generated_at": generated_at,
        }

    async def issue_for_completed_task(self, task_id: str) -> list[dict[str, Any]]:
        """
        Return the task's two receipts, creating whichever is missing.

        Raises:
            NotFound: TASK_NOT_FOUND
            Conflict: RECEIPTS_NOT_AVAILABLE when the task, payment or offer
                is not in its settled state
        """
        existing = self._receipt_store.get_receipts_for_task(task_id)
        if len(existing) == len(RECEIPT_TYPES):
            return existing

        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})
        payment = self._task_store.get_payment_for_task(task_id)
        offer = (
            self._task_store.get_offer(task["accepted_offer_id"], task_id)
            if task["accepted_offer_id"] is not None
            else None
        )
        if (
            task["status"] != "completed"
            or payment is None
            or payment["status"] != "completed"
            or offer is None
            or offer["status"] != "accepted"
        ):
            raise Conflict(
                "RECEIPTS_NOT_AVAILABLE",
                "Receipts are issued only after the task is completed and paid",
                {"task_id": task_id, "status": task["status"]},
            )

        present = {receipt["receipt_type"] for receipt in existing}
        generated_at = now_iso()
        missing = [
            self._build_receipt(receipt_type, task, payment, generated_at)
            for receipt_type in RECEIPT_TYPES
            if receipt_type not in present
        ]

        try:
            inserted = self._receipt_store.insert_receipts(missing, self.format_receipt_number)
        except DuplicateReceiptError:
            self._logger.info("Receipts already issued concurrently", extra={"task_id": task_id})
            inserted = []

        self._task_store.update_task(task_id, {"receipts_pending": 0}, expected_status=None)
        if inserted:
            self._logger.info(
                "Receipts issued",
                extra={
                    "task_id": task_id,
                    "receipt_numbers": [receipt["receipt_number"] for receipt in inserted],
                },
            )
        return self._receipt_store.get_receipts_for_task(task_id)

    async def issue_after_completion(self, task_id: str) -> list[dict[str, Any]]:
        """
        Issue receipts right after a capture.

        Failures are logged and handed to the background retry; the
        completion itself has already succeeded.
        """
        try:
            return await self.issue_for_completed_task(task_id)
        except (ServiceError, sqlite3.Error) as exc:
            self._logger.error(
                "Receipt issuance failed after capture, scheduling retry",
                extra={"task_id": task_id, "error": str(exc)},
            )
            self.schedule_retry(task_id)
            return []

    def schedule_retry(self, task_id: str) -> None:
        if task_id in self._retries:
            return
        task = asyncio.create_task(self._retry(task_id))
        self._retries[task_id] = task
        task.add_done_callback(lambda _: self._retries.pop(task_id, None))

    async def _retry(self, task_id: str) -> None:
        for attempt in range(1, self._retry_attempts + 1):
            await asyncio.sleep(self._retry_backoff_seconds * (2 ** (attempt - 1)))
            try:
                await self.issue_for_completed_task(task_id)
            except (ServiceError, sqlite3.Error) as exc:
                self._logger.warning(
                    "Receipt issuance retry failed",
                    extra={"task_id": task_id, "attempt": attempt, "error": str(exc)},
                )
                continue
            return
        self._logger.error(
            "Receipt issuance retries exhausted, receipts remain pending",
            extra={"task_id": task_id, "attempts": self._retry_attempts},
        )

    async def heal(self, task: dict[str, Any]) -> list[dict[str, Any]]:
        """Issue receipts on read for a completed task whose issuance was interrupted."""
        receipts = self._receipt_store.get_receipts_for_task(task["task_id"])
        if task["status"] == "completed" and (
            task["receipts_pending"] or len(receipts) < len(RECEIPT_TYPES)
        ):
            return await self.issue_for_completed_task(task["task_id"])
        return receipts

    async def close(self) -> None:
        """Cancel scheduled retries."""
        pending = list(self._retries.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
