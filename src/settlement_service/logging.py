"""
Structured JSON logging for the settlement service.

Every record is one JSON object per line on stdout and in a per-day file
(``YYYY-MM-DD.log``) under the configured directory. Context passed through
``extra={...}`` lands under the ``extra`` key.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

SERVICE_LOGGER_NAME = "settlement"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render a log record as a single JSON line."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self._service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class DailyFileHandler(logging.FileHandler):
    """
    File handler that switches to a new ``YYYY-MM-DD.log`` file when the UTC
    date changes between two records.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._current_day = self._today()
        super().__init__(self._path_for(self._current_day), encoding="utf-8", delay=True)

    @staticmethod
    def _today() -> str:
        return datetime.now(tz=UTC).strftime("%Y-%m-%d")

    def _path_for(self, day: str) -> str:
        return str(self._directory / f"{day}.log")

    def emit(self, record: logging.LogRecord) -> None:
        day = self._today()
        if day != self._current_day:
            self.acquire()
            try:
                if self.stream is not None:
                    self.stream.close()
                    self.stream = None  # type: ignore[assignment]
                self._current_day = day
                self.baseFilename = self._path_for(day)
            finally:
                self.release()
        super().emit(record)


def setup_logging(level: str, service_name: str, log_directory: str) -> logging.Logger:
    """
    Configure the service logger tree.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Value written into the ``service`` field of each record
        log_directory: Directory for the per-day log files

    Returns:
        The configured ``settlement`` logger

    Raises:
        ValueError: If level is not a valid log level
    """
    level_name = level.upper()
    if level_name not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}")

    logger = logging.getLogger(SERVICE_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level_name)

    formatter = JSONFormatter(service_name)
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
        DailyFileHandler(log_directory),
    ]
    for handler in handlers:
        handler.setLevel(level_name)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger inside the service namespace.

    Module names such as ``settlement_service.services.escrow_manager`` are
    mapped to ``settlement.services.escrow_manager`` so they inherit the
    handlers installed by ``setup_logging``.
    """
    _, _, tail = name.partition(".")
    if name.startswith("settlement_service") and tail:
        return logging.getLogger(f"{SERVICE_LOGGER_NAME}.{tail}")
    return logging.getLogger(f"{SERVICE_LOGGER_NAME}.{name}")
