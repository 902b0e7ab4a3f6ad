"""Tests for configuration validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config import Config


def test_config_defaults():
    """Test defaults match what a Samsung TV expects."""
    config = Config(_env_file=None)
    assert config.app_name == "SamsungWebRemote"
    assert config.port == 3000
    assert config.handshake_timeout == 15.0
    assert config.token_file == Path(".tokens") / "tv-token.json"
    assert config.validate_config() == []


def test_config_from_environment(monkeypatch):
    """Test settings are read from environment variables."""
    monkeypatch.setenv("APP_NAME", "LivingRoomRemote")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = Config(_env_file=None)

    assert config.app_name == "LivingRoomRemote"
    assert config.port == 8080
    assert config.log_level == "DEBUG"


def test_config_empty_app_name_warning():
    config = Config(_env_file=None, app_name="  ")
    warnings = config.validate_config()
    assert any("APP_NAME" in w for w in warnings)


def test_config_short_handshake_timeout_warning():
    """Test a handshake timeout too short for pairing is flagged."""
    config = Config(_env_file=None, handshake_timeout=2)
    warnings = config.validate_config()
    assert any("HANDSHAKE_TIMEOUT" in w for w in warnings)


def test_config_token_file_directory_warning(tmp_path):
    config = Config(_env_file=None, token_file=tmp_path)
    warnings = config.validate_config()
    assert any("is a directory" in w for w in warnings)


def test_config_rejects_non_positive_timeout():
    with pytest.raises(ValidationError):
        Config(_env_file=None, discovery_timeout=0)
