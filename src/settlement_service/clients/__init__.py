"""HTTP clients for the payment processor and notification collaborators."""

from settlement_service.clients.notification_client import NotificationClient
from settlement_service.clients.payment_processor_client import PaymentProcessorClient

__all__ = ["NotificationClient", "PaymentProcessorClient"]
