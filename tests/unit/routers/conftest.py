"""Router test fixtures with mocked payment processor and notification services."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from settlement_service.app import create_app
from settlement_service.config import clear_settings_cache
from settlement_service.core.lifespan import lifespan
from settlement_service.core.state import get_app_state, reset_app_state
from tests.helpers import config_yaml, processor_mock

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with a temp database and mocked collaborators."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_yaml(tmp_path / "test.db", tmp_path / "logs"))

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Real HTTP clients are closed on shutdown; the mocks take their place in the services
        processor = processor_mock()
        notifications = AsyncMock()
        state.escrow_manager._processor_client = processor
        state.notifier._notification_client = notifications

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def processor(app: Any) -> AsyncMock:
    """The mocked payment processor wired into the escrow manager."""
    return get_app_state().escrow_manager._processor_client


@pytest.fixture
def notifications(app: Any) -> AsyncMock:
    """The mocked notification client wired into the dispatcher."""
    return get_app_state().notifier._notification_client
