"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from settlement_service.config import get_settings
from settlement_service.core.exceptions import register_exception_handlers
from settlement_service.core.lifespan import lifespan
from settlement_service.core.middleware import RequestValidationMiddleware
from settlement_service.routers import health, offers, receipts, reviews, service_fee, tasks
from settlement_service.schemas import ERROR_RESPONSES


def create_app() -> FastAPI:
    """
    Build the settlement API.

    Routers share one error envelope, documented once through
    ``ERROR_RESPONSES`` on every non-health router.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(tasks.router, tags=["Tasks"], responses=ERROR_RESPONSES)
    app.include_router(offers.router, tags=["Offers"], responses=ERROR_RESPONSES)
    app.include_router(receipts.router, tags=["Receipts"], responses=ERROR_RESPONSES)
    app.include_router(reviews.router, tags=["Reviews"], responses=ERROR_RESPONSES)
    app.include_router(service_fee.router, tags=["Service Fee"], responses=ERROR_RESPONSES)

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
