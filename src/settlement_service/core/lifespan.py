"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from settlement_service.clients.notification_client import NotificationClient
from settlement_service.clients.payment_processor_client import PaymentProcessorClient
from settlement_service.config import get_settings
from settlement_service.core.state import init_app_state
from settlement_service.logging import get_logger, setup_logging
from settlement_service.services.escrow_manager import EscrowManager
from settlement_service.services.fee_calculator import FeeCalculator
from settlement_service.services.notification_dispatcher import NotificationDispatcher
from settlement_service.services.offer_coordinator import OfferCoordinator
from settlement_service.services.rating_aggregator import RatingAggregator
from settlement_service.services.receipt_issuer import ReceiptIssuer
from settlement_service.services.receipt_renderer import ReceiptRenderer
from settlement_service.services.receipt_store import ReceiptStore
from settlement_service.services.review_service import ReviewService
from settlement_service.services.review_store import ReviewStore
from settlement_service.services.task_manager import TaskManager
from settlement_service.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    # Invalid fee rules raise ConfigurationError here and abort startup
    fee_calculator = FeeCalculator(settings.fees)

    state = init_app_state()
    state.fee_calculator = fee_calculator
    money = fee_calculator.money

    db_path = settings.database.path
    task_store = TaskStore(db_path=db_path)
    receipt_store = ReceiptStore(db_path=db_path)
    review_store = ReviewStore(db_path=db_path)
    state.receipt_store = receipt_store

    processor = settings.payment_processor
    payment_processor_client = PaymentProcessorClient(
        base_url=processor.base_url,
        create_charge_path=processor.create_charge_path,
        capture_path=processor.capture_path,
        cancel_path=processor.cancel_path,
        api_key=processor.api_key,
        timeout_seconds=processor.timeout_seconds,
    )
    state.payment_processor_client = payment_processor_client

    notification_client = NotificationClient(
        base_url=settings.notifications.base_url,
        notify_path=settings.notifications.notify_path,
        timeout_seconds=settings.notifications.timeout_seconds,
    )
    state.notification_client = notification_client
    notifier = NotificationDispatcher(notification_client=notification_client)
    state.notifier = notifier

    escrow_manager = EscrowManager(
        processor_client=payment_processor_client,
        store=task_store,
        fee_calculator=fee_calculator,
        max_attempts=processor.max_attempts,
        backoff_base_seconds=processor.backoff_base_seconds,
    )
    state.escrow_manager = escrow_manager

    receipt_issuer = ReceiptIssuer(
        task_store=task_store,
        receipt_store=receipt_store,
        number_prefix=settings.receipts.number_prefix,
        retry_attempts=settings.receipts.retry_attempts,
        retry_backoff_seconds=settings.receipts.retry_backoff_seconds,
    )
    state.receipt_issuer = receipt_issuer
    state.receipt_renderer = ReceiptRenderer(
        money=money,
        issuer_name=settings.receipts.issuer_name,
    )

    state.task_manager = TaskManager(
        store=task_store,
        escrow_manager=escrow_manager,
        receipt_issuer=receipt_issuer,
        notifier=notifier,
        money=money,
    )
    state.offer_coordinator = OfferCoordinator(
        store=task_store,
        escrow_manager=escrow_manager,
        notifier=notifier,
        money=money,
    )
    state.review_service = ReviewService(
        review_store=review_store,
        task_store=task_store,
        rating_aggregator=RatingAggregator(store=review_store),
        notifier=notifier,
        min_text_length=settings.reviews.min_text_length,
        max_text_length=settings.reviews.max_text_length,
        recent_reviews_limit=settings.reviews.recent_reviews_limit,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": db_path,
            "payment_processor_base_url": processor.base_url,
            "notifications_base_url": settings.notifications.base_url,
            "currencies": fee_calculator.supported_currencies,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    await receipt_issuer.close()
    await notifier.drain()

    task_store.close()
    receipt_store.close()
    review_store.close()

    await payment_processor_client.close()
    await notification_client.close()
