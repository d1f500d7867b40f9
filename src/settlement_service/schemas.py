"""Pydantic response models for the API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]
    payments_by_status: dict[str, int]
    escrow_held: dict[str, str]
    releases_pending: int
    receipts_pending: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class FeeBreakdown(BaseModel):
    """Which fee rule fired and the values it worked from."""

    model_config = ConfigDict(extra="forbid")
    reason: Literal["percentage_applied", "minimum_fee_applied", "maximum_fee_capped"]
    base_percentage: str
    calculated_fee: str
    min_fee: str
    max_fee: str


class FeeQuoteResponse(BaseModel):
    """Response model for POST /service-fee/calculate."""

    model_config = ConfigDict(extra="forbid")
    budget: str
    service_fee: str
    total_charge: str
    currency: str
    breakdown: FeeBreakdown


class CurrencyFeeBounds(BaseModel):
    """Converted fee bounds for one currency."""

    model_config = ConfigDict(extra="forbid")
    exchange_rate: str
    min_fee: str
    max_fee: str


class FeeConfigResponse(BaseModel):
    """Response model for GET /service-fee/config."""

    model_config = ConfigDict(extra="forbid")
    base_currency: str
    base_percentage: str
    min_fee: str
    max_fee: str
    currencies: dict[str, CurrencyFeeBounds]


ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status: {"model": ErrorResponse} for status in (400, 402, 403, 404, 409, 500, 502)
}
