"""Async HTTP client for the notification collaborator."""

from __future__ import annotations

from typing import Any

import httpx

from settlement_service.logging import get_logger


class NotificationClient:
    """
    Sends settlement events to the notification service.

    Delivery is best effort: failures are logged and never raised.
    """

    def __init__(self, base_url: str, notify_path: str, timeout_seconds: float) -> None:
        self._base_url = base_url
        self._notify_path = notify_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._logger = get_logger(__name__)

    async def notify(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        """Post one event for one user."""
        try:
            response = await self._client.post(
                self._notify_path,
                json={"user_id": user_id, "event": event, "payload": payload},
            )
        except httpx.HTTPError as exc:
            self._logger.warning(
                "Notification delivery failed",
                extra={"user_id": user_id, "event": event, "error": str(exc)},
            )
            return

        if response.status_code >= 400:
            self._logger.warning(
                "Notification service rejected event",
                extra={
                    "user_id": user_id,
                    "event": event,
                    "status_code": response.status_code,
                },
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
