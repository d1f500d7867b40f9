"""Shared request validation helpers for settlement routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from settlement_service.errors import ValidationError

if TYPE_CHECKING:
    from fastapi import Request

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100
MAX_PAGE_OFFSET = 1_000_000_000


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ValidationError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("INVALID_JSON", "Request body is not valid JSON") from exc

    if not isinstance(data, dict):
        raise ValidationError("INVALID_JSON", "Request body must be a JSON object")

    return data


def require_string(data: dict[str, Any], field_name: str) -> str:
    """Extract a required non-empty string field."""
    if field_name not in data or data[field_name] is None:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            {"field": field_name},
        )

    value = data[field_name]
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a non-empty string",
            {"field": field_name},
        )
    return value


def optional_string(data: dict[str, Any], field_name: str) -> str | None:
    """Extract an optional string field; absent and null both mean None."""
    value = data.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            {"field": field_name},
        )
    return value


def require_field(data: dict[str, Any], field_name: str) -> object:
    """Extract a required field of any JSON type."""
    if field_name not in data or data[field_name] is None:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            {"field": field_name},
        )
    return data[field_name]


def require_query(request: Request, name: str) -> str:
    """Extract a required non-empty query parameter."""
    value = request.query_params.get(name)
    if not value:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Missing required query parameter: {name}",
            {"field": name},
        )
    return value


def _parse_bounded(raw: str, name: str, minimum: int, maximum: int | None = None) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError("INVALID_PAYLOAD", f"{name} must be an integer") from exc
    if value < minimum:
        raise ValidationError("INVALID_PAYLOAD", f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError("INVALID_PAYLOAD", f"{name} must be <= {maximum}")
    return value


def parse_pagination(request: Request) -> tuple[int, int]:
    """Read ``offset`` and ``limit`` query parameters."""
    offset_raw = request.query_params.get("offset")
    limit_raw = request.query_params.get("limit")

    offset = 0 if offset_raw is None else _parse_bounded(offset_raw, "offset", 0, MAX_PAGE_OFFSET)
    limit = DEFAULT_PAGE_LIMIT if limit_raw is None else _parse_bounded(limit_raw, "limit", 1)
    return offset, min(limit, MAX_PAGE_LIMIT)
