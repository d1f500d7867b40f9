"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from settlement_service.clients.notification_client import NotificationClient
    from settlement_service.clients.payment_processor_client import PaymentProcessorClient
    from settlement_service.services.escrow_manager import EscrowManager
    from settlement_service.services.fee_calculator import FeeCalculator
    from settlement_service.services.notification_dispatcher import NotificationDispatcher
    from settlement_service.services.offer_coordinator import OfferCoordinator
    from settlement_service.services.receipt_issuer import ReceiptIssuer
    from settlement_service.services.receipt_renderer import ReceiptRenderer
    from settlement_service.services.receipt_store import ReceiptStore
    from settlement_service.services.review_service import ReviewService
    from settlement_service.services.task_manager import TaskManager


@dataclass
class AppState:
    """Stores, escrow collaborators and clients wired up at startup."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    payment_processor_client: PaymentProcessorClient | None = None
    notification_client: NotificationClient | None = None
    fee_calculator: FeeCalculator | None = None
    escrow_manager: EscrowManager | None = None
    notifier: NotificationDispatcher | None = None
    receipt_store: ReceiptStore | None = None
    receipt_issuer: ReceiptIssuer | None = None
    receipt_renderer: ReceiptRenderer | None = None
    task_manager: TaskManager | None = None
    offer_coordinator: OfferCoordinator | None = None
    review_service: ReviewService | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
