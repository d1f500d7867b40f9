"""Identifier and timestamp helpers shared by the service layer."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime

TASK_PREFIX = "t"
OFFER_PREFIX = "off"
PAYMENT_PREFIX = "pay"
RECEIPT_PREFIX = "rcpt"
REVIEW_PREFIX = "rev"

_UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
_TASK_ID_RE = re.compile(rf"^{TASK_PREFIX}-{_UUID_PATTERN}$", re.IGNORECASE)


def new_id(prefix: str) -> str:
    """Return ``<prefix>-<uuid4>``."""
    return f"{prefix}-{uuid.uuid4()}"


def is_task_id(value: str) -> bool:
    return _TASK_ID_RE.match(value) is not None


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
