"""Configuration loading tests for the settlement service."""

from __future__ import annotations

from decimal import Decimal

import pytest
import yaml

from settlement_service.config import (
    REDACTION_MARKER,
    Settings,
    clear_settings_cache,
    get_safe_config,
    get_settings,
)
from tests.helpers import config_yaml


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a valid config and point CONFIG_PATH at it."""
    path = tmp_path / "config.yaml"
    path.write_text(config_yaml(tmp_path / "settlement.db", tmp_path / "logs"))
    monkeypatch.setenv("CONFIG_PATH", str(path))
    clear_settings_cache()
    return path


def _rewrite(path, mutate) -> None:
    raw = yaml.safe_load(path.read_text())
    mutate(raw)
    path.write_text(yaml.safe_dump(raw))
    clear_settings_cache()


@pytest.mark.unit
def test_config_loads_from_yaml(config_file) -> None:
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service.name == "settlement"
    assert settings.payment_processor.max_attempts == 3
    assert settings.fees.base_percentage == Decimal("0.10")
    assert settings.fees.currencies["AUD"].rate == Decimal("1.5")
    assert settings.receipts.number_prefix == "MT"
    assert settings.receipts.issuer_name == "MyToDoo"
    assert settings.reviews.min_text_length == 10


@pytest.mark.unit
def test_settings_are_cached(config_file) -> None:
    assert get_settings() is get_settings()


@pytest.mark.unit
def test_config_rejects_extra_fields(config_file) -> None:
    _rewrite(config_file, lambda raw: raw["fees"].update({"surcharge": "0.01"}))
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_config_missing_required_section(config_file) -> None:
    _rewrite(config_file, lambda raw: raw.pop("receipts"))
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_receipt_prefix_must_be_two_characters(config_file) -> None:
    _rewrite(config_file, lambda raw: raw["receipts"].update({"number_prefix": "MTX"}))
    with pytest.raises(Exception):  # noqa: B017
        get_settings()


@pytest.mark.unit
def test_config_must_be_a_mapping(tmp_path, monkeypatch) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    monkeypatch.setenv("CONFIG_PATH", str(path))
    clear_settings_cache()
    with pytest.raises(ValueError):
        get_settings()


@pytest.mark.unit
def test_safe_config_redacts_api_key(config_file) -> None:
    safe = get_safe_config()
    assert safe["payment_processor"]["api_key"] == REDACTION_MARKER
    assert safe["payment_processor"]["base_url"] == "http://processor.test"
    assert safe["fees"]["base_percentage"] == "0.10"
