"""Service layer components."""

from settlement_service.services.escrow_manager import EscrowManager
from settlement_service.services.fee_calculator import FeeCalculator
from settlement_service.services.notification_dispatcher import NotificationDispatcher
from settlement_service.services.offer_coordinator import OfferCoordinator
from settlement_service.services.rating_aggregator import RatingAggregator
from settlement_service.services.receipt_issuer import ReceiptIssuer
from settlement_service.services.review_service import ReviewService
from settlement_service.services.task_manager import TaskManager

__all__ = [
    "EscrowManager",
    "FeeCalculator",
    "NotificationDispatcher",
    "OfferCoordinator",
    "RatingAggregator",
    "ReceiptIssuer",
    "ReviewService",
    "TaskManager",
]
