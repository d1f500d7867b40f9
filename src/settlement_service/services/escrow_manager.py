"""Escrow hold, capture and release against the payment processor."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from settlement_service.clients.payment_processor_client import (
    ProcessorConflictError,
    ProcessorDeclinedError,
    ProcessorError,
    ProcessorUnavailableError,
)
from settlement_service.errors import Conflict, PaymentDeclined, PaymentProcessorError
from settlement_service.logging import get_logger
from settlement_service.services.ids import PAYMENT_PREFIX, new_id, now_iso

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from settlement_service.clients.payment_processor_client import PaymentProcessorClient
    from settlement_service.services.fee_calculator import FeeCalculator
    from settlement_service.services.task_store import TaskStore

T = TypeVar("T")


class EscrowManager:
    """
    Decides when to hold, capture or release funds and how much.

    Authorize and capture retry transient processor failures with
    exponential backoff. Cancellation is attempted once per call; a failed
    cancellation is flagged on the payment and retried on later reads.
    """

    def __init__(
        self,
        processor_client: PaymentProcessorClient,
        store: TaskStore,
        fee_calculator: FeeCalculator,
        max_attempts: int,
        backoff_base_seconds: float,
    ) -> None:
        self._processor_client = processor_client
        self._store = store
        self._fee_calculator = fee_calculator
        self._max_attempts = max_attempts
        self._backoff_base_seconds = backoff_base_seconds
        self._logger = get_logger(__name__)

    async def _with_retries(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        context: dict[str, Any],
    ) -> T:
        attempt = 1
        while True:
            try:
                return await call()
            except ProcessorUnavailableError as exc:
                if attempt >= self._max_attempts:
                    raise PaymentProcessorError(
                        f"Payment processor unavailable during {operation}",
                        {"attempts": attempt},
                    ) from exc
                delay = self._backoff_base_seconds * (2 ** (attempt - 1))
                self._logger.warning(
                    "Payment processor call failed, retrying",
                    extra={**context, "operation": operation, "attempt": attempt, "delay": delay},
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def authorize(self, task: dict[str, Any], offer: dict[str, Any]) -> dict[str, Any]:
        """
        Hold the offer amount plus the platform fee on the poster's card.

        Returns the payment row (status ``pending``) ready to be inserted with
        the acceptance transaction.

        Raises:
            PaymentDeclined: processor refused the hold
            PaymentProcessorError: processor unavailable after retries
        """
        quote = self._fee_calculator.quote(offer["amount"], offer["currency"])
        task_id = task["task_id"]
        offer_id = offer["offer_id"]
        context = {"task_id": task_id, "offer_id": offer_id}

        try:
            intent_id = await self._with_retries(
                "authorize",
                lambda: self._processor_client.create_held_charge(
                    amount=quote.total_charge,
                    currency=quote.currency,
                    metadata={"task_id": task_id, "offer_id": offer_id},
                    idempotency_key=f"authorize-{task_id}-{offer_id}",
                ),
                context,
            )
        except ProcessorDeclinedError as exc:
            self._logger.info("Escrow hold declined", extra={**context, "status": exc.status_code})
            raise PaymentDeclined("Payment processor declined the escrow hold", {}) from exc
        except ProcessorError as exc:
            raise PaymentProcessorError("Payment processor rejected the escrow hold", {}) from exc

        self._logger.info(
            "Escrow hold authorized",
            extra={
                **context,
                "intent_id": intent_id,
                "gross_amount": quote.total_charge,
                "platform_fee": quote.service_fee,
                "currency": quote.currency,
            },
        )
        return {
            "payment_id": new_id(PAYMENT_PREFIX),
            "task_id": task_id,
            "offer_id": offer_id,
            "payer_id": task["poster_id"],
            "payee_id": offer["bidder_id"],
            "gross_amount": quote.total_charge,
            "platform_fee": quote.service_fee,
            "payee_amount": quote.budget,
            "currency": quote.currency,
            "intent_id": intent_id,
            "fee_reason": quote.reason,
            "status": "pending",
            "cancel_pending": 0,
            "created_at": now_iso(),
            "captured_at": None,
            "cancelled_at": None,
        }

    async def capture(self, payment: dict[str, Any]) -> dict[str, Any]:
        """
        Capture a held payment. Already-captured payments are returned as is.

        The payment only becomes ``completed`` when the processor confirms
        the capture. A processor conflict means the charge is no longer held
        (released, cancelled or expired) and is treated as a refusal.

        Raises:
            Conflict: payment is cancelled, failed, refunded or being released
            PaymentDeclined: processor refused the capture
            PaymentProcessorError: processor unavailable after retries
        """
        if payment["status"] == "completed":
            return payment
        if payment["status"] != "pending" or payment["cancel_pending"]:
            raise Conflict(
                "PAYMENT_NOT_CAPTURABLE",
                f"Payment is '{payment['status']}' and cannot be captured",
                {"payment_id": payment["payment_id"]},
            )

        payment_id = payment["payment_id"]
        context = {"task_id": payment["task_id"], "payment_id": payment_id}
        try:
            await self._with_retries(
                "capture",
                lambda: self._processor_client.capture(
                    payment["intent_id"],
                    idempotency_key=f"capture-{payment_id}",
                ),
                context,
            )
        except ProcessorConflictError as exc:
            self._logger.error(
                "Processor reports the charge is no longer held, capture refused",
                extra={**context, "intent_id": payment["intent_id"]},
            )
            raise PaymentDeclined(
                "The escrow hold is no longer available for capture",
                {"payment_id": payment_id},
            ) from exc
        except ProcessorDeclinedError as exc:
            self._logger.warning("Escrow capture declined", extra=context)
            raise PaymentDeclined(
                "Payment processor declined the capture",
                {"payment_id": payment_id},
            ) from exc
        except ProcessorError as exc:
            raise PaymentProcessorError(
                "Payment processor rejected the capture",
                {"payment_id": payment_id},
            ) from exc

        captured_at = now_iso()
        self._store.update_payment(
            payment_id,
            {"status": "completed", "captured_at": captured_at},
            expected_status="pending",
        )
        self._logger.info(
            "Escrow captured",
            extra={**context, "gross_amount": payment["gross_amount"]},
        )
        updated = self._store.get_payment_for_task(payment["task_id"])
        if updated is None:
            msg = f"Payment {payment_id} not found after capture"
            raise RuntimeError(msg)
        return updated

    async def cancel(self, payment: dict[str, Any]) -> dict[str, Any]:
        """
        Release a held payment and return the column updates to persist.

        Never raises for processor failures: the payment is flagged
        ``cancel_pending`` instead.
        """
        if payment["status"] in ("cancelled", "failed"):
            return {}

        payment_id = payment["payment_id"]
        context = {"task_id": payment["task_id"], "payment_id": payment_id}
        try:
            await self._processor_client.cancel(
                payment["intent_id"],
                idempotency_key=f"cancel-{payment_id}",
            )
        except ProcessorConflictError:
            self._logger.info("Charge already released at processor", extra=context)
        except ProcessorError:
            self._logger.error("Escrow release failed, marking cancel pending", extra=context)
            return {"cancel_pending": 1}

        self._logger.info("Escrow hold released", extra=context)
        return {"status": "cancelled", "cancelled_at": now_iso(), "cancel_pending": 0}

    async def release(self, payment: dict[str, Any]) -> dict[str, Any]:
        """
        Release the hold of a payment whose task is already cancelled and
        persist the outcome. Returns the refreshed payment, which keeps its
        ``cancel_pending`` flag when the processor could not be reached.
        """
        updates = await self.cancel(payment)
        if updates.get("status") != "cancelled":
            return payment

        self._store.update_payment(payment["payment_id"], updates, expected_status="pending")
        return {**payment, **updates}

    async def retry_pending_cancel(self, payment: dict[str, Any]) -> dict[str, Any]:
        """If a cancellation is pending, retry it and return the refreshed payment."""
        if not payment["cancel_pending"]:
            return payment

        refreshed = await self.release(payment)
        if refreshed["cancel_pending"]:
            self._logger.warning(
                "Pending escrow release retry failed",
                extra={"task_id": payment["task_id"], "payment_id": payment["payment_id"]},
            )
        return refreshed

    async def release_unrecorded_hold(self, intent_id: str, task_id: str, offer_id: str) -> None:
        """Release a hold created for an acceptance that lost its race."""
        context = {"task_id": task_id, "offer_id": offer_id, "intent_id": intent_id}
        try:
            await self._processor_client.cancel(
                intent_id,
                idempotency_key=f"release-{task_id}-{offer_id}",
            )
        except ProcessorConflictError:
            pass
        except ProcessorError:
            self._logger.error("Failed to release orphaned escrow hold", extra=context)
            return
        self._logger.info("Orphaned escrow hold released", extra=context)
