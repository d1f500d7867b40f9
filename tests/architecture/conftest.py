"""Architecture test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from pytestarch import EvaluableArchitecture, LayeredArchitecture, get_evaluable_architecture

# tests/architecture/conftest.py -> tests/ -> repository root
_TESTS_DIR = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _TESTS_DIR.parent
_SETTLEMENT_PKG = _PROJECT_ROOT / "src" / "settlement_service"


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    """Import graph of settlement_service, with module names like 'settlement_service.routers.tasks'."""
    return get_evaluable_architecture(str(_SETTLEMENT_PKG), str(_SETTLEMENT_PKG))


@pytest.fixture(scope="session")
def layered_arch() -> LayeredArchitecture:
    """Layers (top to bottom):
    routers   - HTTP endpoint handlers
    core      - App state, lifespan, middleware, exception handlers
    services  - Settlement logic and SQLite stores (no FastAPI imports)
    clients   - Outbound HTTP to the payment processor and notifications
    """
    return (
        LayeredArchitecture()
        .layer("routers")
        .containing_modules(["settlement_service.routers"])
        .layer("core")
        .containing_modules(["settlement_service.core"])
        .layer("services")
        .containing_modules(["settlement_service.services"])
        .layer("clients")
        .containing_modules(["settlement_service.clients"])
    )
