"""Unit test fixtures: clear cached settings and app state around every test."""

import pytest

from settlement_service.config import clear_settings_cache
from settlement_service.core.state import reset_app_state


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()
