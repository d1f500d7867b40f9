"""HTTP routers for the settlement service."""

from settlement_service.routers import health, offers, receipts, reviews, service_fee, tasks

__all__ = ["health", "offers", "receipts", "reviews", "service_fee", "tasks"]
