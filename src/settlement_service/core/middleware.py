"""ASGI middleware for request validation."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send


JSON_BODY_ENDPOINTS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^/tasks$"),
    re.compile(r"^/tasks/[^/]+/offers$"),
    re.compile(r"^/tasks/[^/]+/offers/[^/]+/(accept|withdraw)$"),
    re.compile(r"^/tasks/[^/]+/(mark-done|complete-payment|cancel)$"),
    re.compile(r"^/users/[^/]+/reviews$"),
    re.compile(r"^/service-fee/calculate$"),
)


def _reject(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": {}},
    )


class RequestValidationMiddleware:
    """
    ASGI middleware that validates Content-Type and body size.

    Runs before FastAPI routes for POST requests on the JSON endpoints:
    415 when the body is not declared as application/json, 413 when it
    exceeds max_body_size. Other requests pass through untouched so the
    router can answer 404/405.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("method") != "POST":
            await self.app(scope, receive, send)
            return

        path = cast("str", scope.get("path", ""))
        if not any(pattern.match(path) for pattern in JSON_BODY_ENDPOINTS):
            await self.app(scope, receive, send)
            return

        headers = dict(cast("list[tuple[bytes, bytes]]", scope.get("headers", [])))
        content_type = headers.get(b"content-type", b"").decode("latin-1").lower()
        if not content_type.startswith("application/json"):
            response = _reject(
                415, "UNSUPPORTED_MEDIA_TYPE", "Content-Type must be application/json"
            )
            await response(scope, receive, send)
            return

        declared_length = headers.get(b"content-length")
        if declared_length is not None and declared_length.isdigit():
            if int(declared_length) > self.max_body_size:
                response = _reject(
                    413, "PAYLOAD_TOO_LARGE", "Request body exceeds maximum allowed size"
                )
                await response(scope, receive, send)
                return

        body = bytearray()
        while True:
            message = cast("dict[str, Any]", await receive())
            body.extend(cast("bytes", message.get("body", b"")))
            if len(body) > self.max_body_size:
                response = _reject(
                    413, "PAYLOAD_TOO_LARGE", "Request body exceeds maximum allowed size"
                )
                await response(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        replayed = False

        async def replay_receive() -> dict[str, Any]:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": bytes(body), "more_body": False}
            return {"type": "http.disconnect"}

        await self.app(scope, replay_receive, send)
