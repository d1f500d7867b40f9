"""
Configuration management for the settlement service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

REDACTION_MARKER = "***REDACTED***"

_SECRET_KEY_MARKERS = ("key", "secret", "token", "password")


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class PaymentProcessorConfig(BaseModel):
    """Payment processor connection and retry configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    create_charge_path: str
    capture_path: str
    cancel_path: str
    api_key: str
    timeout_seconds: float
    max_attempts: int = Field(ge=1)
    backoff_base_seconds: float = Field(ge=0)


class NotificationsConfig(BaseModel):
    """Notification collaborator connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    notify_path: str
    timeout_seconds: float


class CurrencyConfig(BaseModel):
    """Exchange rate against the base currency and minor-unit exponent."""

    model_config = ConfigDict(extra="forbid")
    rate: Decimal
    decimals: int = Field(ge=0, le=4)


class FeesConfig(BaseModel):
    """Platform service fee rules. Bounds are expressed in the base currency."""

    model_config = ConfigDict(extra="forbid")
    base_currency: str
    base_percentage: Decimal
    min_fee: Decimal
    max_fee: Decimal
    currencies: dict[str, CurrencyConfig]


class ReceiptsConfig(BaseModel):
    """Receipt numbering, issuance retry and PDF rendering configuration."""

    model_config = ConfigDict(extra="forbid")
    number_prefix: str = Field(min_length=2, max_length=2)
    issuer_name: str = Field(min_length=1)
    retry_attempts: int = Field(ge=1)
    retry_backoff_seconds: float = Field(ge=0)


class ReviewsConfig(BaseModel):
    """Review submission limits."""

    model_config = ConfigDict(extra="forbid")
    min_text_length: int = Field(ge=0)
    max_text_length: int = Field(ge=1)
    recent_reviews_limit: int = Field(ge=0)


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    request: RequestConfig
    payment_processor: PaymentProcessorConfig
    notifications: NotificationsConfig
    fees: FeesConfig
    receipts: ReceiptsConfig
    reviews: ReviewsConfig


def get_config_path() -> Path:
    """
    Determine configuration file path.

    CONFIG_PATH wins when set; otherwise ``config.yaml`` in the working
    directory.
    """
    configured = os.environ.get("CONFIG_PATH")
    if configured:
        return Path(configured)
    return Path.cwd() / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings from the YAML configuration file."""
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call re-reads the file."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTION_MARKER
            if any(marker in key.lower() for marker in _SECRET_KEY_MARKERS)
            else _redact(inner)
            for key, inner in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    result: dict[str, Any] = _redact(get_settings().model_dump(mode="json"))
    return result
