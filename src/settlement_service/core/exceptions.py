"""Exception handlers rendering every failure as {"error", "message", "details"}."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from settlement_service.errors import ConfigurationError, ServiceError
from settlement_service.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from starlette.types import ExceptionHandler

__all__ = ["ServiceError", "register_exception_handlers"]

_HTTP_ERROR_CODES = {
    404: ("NOT_FOUND", "Resource not found"),
    405: ("METHOD_NOT_ALLOWED", "Method not allowed"),
}


def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details or {}},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle ServiceError exceptions."""
    logger = get_logger(__name__)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Service error",
        extra={
            "error_code": exc.error,
            "status_code": exc.status_code,
            "path": str(request.url.path),
        },
    )
    return _error_response(exc.status_code, exc.error, exc.message, exc.details)


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Money configuration missing at request time."""
    logger = get_logger(__name__)
    logger.error(
        "Configuration error while handling request",
        extra={"path": str(request.url.path), "error": str(exc)},
    )
    return _error_response(500, "CONFIGURATION_ERROR", "Service configuration is incomplete")


async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger(__name__)
    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle Starlette HTTP exceptions (404 for unknown routes, 405 from router)."""
    error, message = _HTTP_ERROR_CODES.get(exc.status_code, ("HTTP_ERROR", str(exc.detail)))
    return _error_response(exc.status_code, error, message)


async def request_validation_handler(
    _request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Path and query parameter validation failures."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return _error_response(400, "INVALID_PAYLOAD", "Request parameters are invalid", {"fields": fields})


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(ServiceError, cast("ExceptionHandler", service_error_handler))
    app.add_exception_handler(
        ConfigurationError,
        cast("ExceptionHandler", configuration_error_handler),
    )
    app.add_exception_handler(
        StarletteHTTPException,
        cast("ExceptionHandler", http_exception_handler),
    )
    app.add_exception_handler(
        RequestValidationError,
        cast("ExceptionHandler", request_validation_handler),
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
