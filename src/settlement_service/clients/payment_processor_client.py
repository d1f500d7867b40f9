"""Async HTTP client for the escrow-capable payment processor."""

from __future__ import annotations

from typing import Any

import httpx

from settlement_service.logging import get_logger


class ProcessorError(Exception):
    """Base class for payment processor failures."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProcessorUnavailableError(ProcessorError):
    """Transient failure: connection error, timeout, 5xx or 429. Safe to retry."""


class ProcessorDeclinedError(ProcessorError):
    """The processor refused the operation (card declined, invalid request)."""


class ProcessorConflictError(ProcessorError):
    """The charge is already in the requested or a terminal state."""


class ProcessorRejectedError(ProcessorError):
    """Any other non-retryable response (auth failure, unknown charge)."""


class PaymentProcessorClient:
    """
    Client for held-charge operations.

    Charges are created with manual capture so funds are only held. Every
    call carries an ``Idempotency-Key`` header so a retried request never
    produces a second charge, capture or cancellation.
    """

    def __init__(
        self,
        base_url: str,
        create_charge_path: str,
        capture_path: str,
        cancel_path: str,
        api_key: str,
        timeout_seconds: float,
    ) -> None:
        self._base_url = base_url
        self._create_charge_path = create_charge_path
        self._capture_path = capture_path
        self._cancel_path = cancel_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self._logger = get_logger(__name__)

    async def _post(
        self,
        operation: str,
        path: str,
        idempotency_key: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(
                path,
                json=payload,
                headers={"Idempotency-Key": idempotency_key},
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            self._logger.warning(
                "Payment processor connection failed",
                extra={"operation": operation, "error": str(exc), "base_url": self._base_url},
            )
            msg = f"Cannot reach payment processor for {operation}"
            raise ProcessorUnavailableError(msg) from exc
        except httpx.HTTPError as exc:
            self._logger.warning(
                "Payment processor HTTP error",
                extra={"operation": operation, "error": str(exc), "base_url": self._base_url},
            )
            msg = f"Payment processor request failed for {operation}"
            raise ProcessorUnavailableError(msg) from exc

        status = response.status_code
        if 200 <= status < 300:
            result: dict[str, Any] = response.json()
            return result

        try:
            body: Any = response.json()
        except ValueError:
            body = {"raw": response.text}

        if status == 429 or status >= 500:
            msg = f"Payment processor unavailable ({status}) for {operation}"
            raise ProcessorUnavailableError(msg, status, body)
        if status in (400, 402):
            msg = f"Payment processor declined {operation}"
            raise ProcessorDeclinedError(msg, status, body)
        if status == 409:
            msg = f"Charge already resolved for {operation}"
            raise ProcessorConflictError(msg, status, body)

        self._logger.warning(
            "Payment processor unexpected status",
            extra={"operation": operation, "status_code": status, "base_url": self._base_url},
        )
        msg = f"Payment processor rejected {operation} with status {status}"
        raise ProcessorRejectedError(msg, status, body)

    async def create_held_charge(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> str:
        """
        Create a manually-captured charge and return its intent id.

        Args:
            amount: Amount to hold, in minor units
            currency: ISO currency code
            metadata: Task/offer references attached to the charge
            idempotency_key: Key sent in the Idempotency-Key header
        """
        result = await self._post(
            "create_held_charge",
            self._create_charge_path,
            idempotency_key,
            {
                "amount": amount,
                "currency": currency.lower(),
                "capture_method": "manual",
                "metadata": metadata,
            },
        )
        intent_id = result.get("id")
        if not isinstance(intent_id, str) or not intent_id:
            msg = "Payment processor response is missing the charge id"
            raise ProcessorRejectedError(msg, None, result)
        return intent_id

    async def capture(self, intent_id: str, idempotency_key: str) -> dict[str, Any]:
        """Capture the full held amount of a charge."""
        return await self._post(
            "capture",
            self._capture_path.format(intent_id=intent_id),
            idempotency_key,
            {},
        )

    async def cancel(self, intent_id: str, idempotency_key: str) -> dict[str, Any]:
        """Release a held charge without capturing it."""
        return await self._post(
            "cancel",
            self._cancel_path.format(intent_id=intent_id),
            idempotency_key,
            {},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
