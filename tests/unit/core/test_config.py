from __future__ import annotations

import pytest

from nurture.core.config import AgentSettings, _build_config
from nurture.core.exceptions import ConfigurationError


def test_defaults_keep_agent_off_and_channels_sandboxed(monkeypatch):
    for name in ("AGENT_ENABLED", "AGENT_DRY_RUN", "AGENT_ROLLOUT_PERCENT", "CHANNEL_SANDBOX_MODE", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)

    config = _build_config("development")

    assert config.agent_settings == AgentSettings(enabled=False, dry_run=False, rollout_percent=100)
    assert config.CHANNEL_SANDBOX_MODE is True
    assert config.DATABASE_URL.startswith("sqlite")
    assert (config.CONTACT_HOURS_START, config.CONTACT_HOURS_END) == (8, 21)


def test_agent_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("AGENT_ENABLED", "true")
    monkeypatch.setenv("AGENT_DRY_RUN", "1")
    monkeypatch.setenv("AGENT_ROLLOUT_PERCENT", "25")

    settings = _build_config("development").agent_settings

    assert settings.enabled is True
    assert settings.dry_run is True
    assert settings.rollout_percent == 25


def test_production_forces_debug_off(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("DATABASE_URL", "postgresql://nurture:secret@db:5432/nurture")

    config = _build_config("production")

    assert config.is_production
    assert config.DEBUG is False


@pytest.mark.parametrize(
    "name, value",
    [
        ("AGENT_ROLLOUT_PERCENT", "101"),
        ("DATABASE_URL", "mysql://localhost/nurture"),
        ("CONTACT_HOURS_START", "22"),
        ("BATCH_SIZE", "0"),
        ("LOG_LEVEL", "chatty"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        _build_config("development")


def test_agent_settings_validate_rollout():
    with pytest.raises(ConfigurationError):
        AgentSettings(rollout_percent=-1)
