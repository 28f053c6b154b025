"""Tests for settings and logging setup."""

import structlog

from sentence_vault import logging_config
from sentence_vault.config import Settings, get_settings


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("SENTENCE_VAULT_API_URL", "http://backend:9000")
    monkeypatch.setenv("SENTENCE_VAULT_HIGHLIGHT_COLOR", "green")
    settings = Settings()
    assert settings.api_url == "http://backend:9000"
    assert settings.highlight_color == "green"
    assert settings.chat_timeout == 120.0


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_configure_logging_runs_once(monkeypatch):
    calls = []
    monkeypatch.setitem(logging_config._CONFIGURED, "value", False)
    monkeypatch.setattr(structlog, "configure", lambda **kwargs: calls.append(kwargs))

    settings = Settings(log_level="debug", log_json=False)
    logging_config.configure_logging(settings)
    logging_config.configure_logging(settings)

    assert len(calls) == 1
    assert isinstance(calls[0]["processors"][-1], structlog.dev.ConsoleRenderer)
