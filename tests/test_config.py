"""Tests for config validation and repr redaction."""

import logging
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from splitflap import config
from splitflap.config import SplitflapSettings


def test_missing_required_fields_raises():
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(ValidationError):
            SplitflapSettings()


def test_defaults(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    settings = SplitflapSettings()
    assert settings.BOARD_URL == "http://vestaboard.local:7000"
    assert settings.BOARD_TIMEOUT_MS == 5000
    assert settings.BOARD_MAX_RETRIES == 2
    assert settings.BOARD_BACKOFF_BASE_MS == 1000
    assert settings.BOARD_BACKOFF_MAX_MS == 10_000
    assert settings.PROVIDER_FAILURE_THRESHOLD == 5
    assert settings.provider_names == ["openai", "anthropic"]
    assert settings.DATABASE_URL is None


def test_sensitive_fields_redacted_in_repr():
    with patch.dict(os.environ, {
        "BOARD_API_KEY": "secret-board-key",
        "OPENROUTER_API_KEY": "sk-secret-key",
        "DATABASE_URL": "postgresql://user:hunter2@db/splitflap",
    }, clear=True):
        settings = SplitflapSettings()
        r = repr(settings)
        assert "secret-board-key" not in r
        assert "sk-secret-key" not in r
        assert "hunter2" not in r
        assert "***" in r


def test_unset_optional_secrets_show_none_in_repr(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.delenv("REDIS_URL", raising=False)
    assert "REDIS_URL=None" in repr(SplitflapSettings())


def test_provider_names_are_normalised(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.setenv("PREFERRED_PROVIDER", " Anthropic ")
    monkeypatch.setenv("ALTERNATE_PROVIDER", "OPENAI")
    settings = SplitflapSettings()
    assert settings.provider_names == ["anthropic", "openai"]


def test_empty_alternate_disables_failover(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.setenv("ALTERNATE_PROVIDER", "")
    settings = SplitflapSettings()
    assert settings.ALTERNATE_PROVIDER is None
    assert settings.provider_names == ["openai"]


def test_alternate_must_differ_from_preferred(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.setenv("ALTERNATE_PROVIDER", "openai")
    with pytest.raises(ValidationError, match="must differ"):
        SplitflapSettings()


def test_backoff_bounds_validated(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.setenv("BOARD_BACKOFF_BASE_MS", "5000")
    monkeypatch.setenv("BOARD_BACKOFF_MAX_MS", "1000")
    with pytest.raises(ValidationError):
        SplitflapSettings()


def test_timeout_floor(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    monkeypatch.setenv("BOARD_TIMEOUT_MS", "10")
    with pytest.raises(ValidationError):
        SplitflapSettings()


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setenv("BOARD_API_KEY", "board-key")
    config.get_settings.cache_clear()
    try:
        assert config.get_settings() is config.get_settings()
    finally:
        config.get_settings.cache_clear()


def test_find_env_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert config.find_env_file() is None

    (tmp_path / ".env").write_text("BOARD_API_KEY=x\n", encoding="utf-8")
    assert str(config.find_env_file()) == ".env"

    (tmp_path / "config").mkdir()
    (tmp_path / "config" / ".env").write_text("BOARD_API_KEY=y\n", encoding="utf-8")
    assert config.find_env_file().as_posix() == "config/.env"


def test_load_env_prefers_config_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BOARD_URL", raising=False)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / ".env").write_text("BOARD_URL=http://primary\n", encoding="utf-8")
    (tmp_path / ".env").write_text("BOARD_URL=http://secondary\n", encoding="utf-8")

    config.load_env()
    try:
        assert os.environ["BOARD_URL"] == "http://primary"
    finally:
        os.environ.pop("BOARD_URL", None)


def test_configure_logging_sets_format():
    with patch("splitflap.config.logging.basicConfig") as basic:
        config.configure_logging(logging.DEBUG)
    kwargs = basic.call_args.kwargs
    assert kwargs["level"] == logging.DEBUG
    assert kwargs["format"] == config.LOG_FORMAT
    assert kwargs["datefmt"] == config.LOG_DATEFMT
