"""Fire-and-forget fan-out of settlement events."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from settlement_service.logging import get_logger

if TYPE_CHECKING:
    from settlement_service.clients.notification_client import NotificationClient


class NotificationDispatcher:
    """
    Schedules notification deliveries without blocking the request.

    Pending deliveries are tracked so they are not garbage collected
    mid-flight and can be drained on shutdown.
    """

    def __init__(self, notification_client: NotificationClient) -> None:
        self._notification_client = notification_client
        self._pending: set[asyncio.Task[None]] = set()
        self._logger = get_logger(__name__)

    def dispatch(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._deliver(user_id, event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._notification_client.notify(user_id, event, payload)
        except Exception:
            self._logger.exception(
                "Notification dispatch failed",
                extra={"user_id": user_id, "event": event},
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
