"""
Tests for configuration management in `rpms/config.py`.

Covers:
- Environment parsing and debug defaults
- SMTP credentials parsing and secrecy
- Alert channel and reminder failure policy parsing
- Logging level coercion to the expected Literal
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from rpms.config import (
    AppConfig,
    DispatchSettings,
    FailurePolicy,
    SmtpSettings,
    get_config,
    load_config_from_env,
    print_config_summary,
)
from rpms.domain.models import ChannelKind

_ENV_VARS = (
    "ENVIRONMENT",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "SMTP_USE_TLS",
    "ALERT_CHANNEL",
    "ALERT_MAX_CONCURRENT_SENDS",
    "REMINDER_FAILURE_POLICY",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start every test from an empty environment and a cold config cache."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults() -> None:
    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.logging.level == "INFO"
    assert config.smtp.host == "smtp.gmail.com"
    assert config.smtp.port == 587
    assert config.smtp.has_credentials is False
    assert config.dispatch.channel == ChannelKind.EMAIL
    assert config.reminders.failure_policy == FailurePolicy.ISOLATE


def test_production_uses_json_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_smtp_credentials_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SMTP_HOST", "mail.example.com")
    monkeypatch.setenv("SMTP_PORT", "2525")
    monkeypatch.setenv("SMTP_USERNAME", "alerts@example.com")
    monkeypatch.setenv("SMTP_PASSWORD", "hunter2")
    monkeypatch.setenv("SMTP_USE_TLS", "no")

    smtp = load_config_from_env().smtp

    assert smtp.host == "mail.example.com"
    assert smtp.port == 2525
    assert smtp.username == "alerts@example.com"
    assert smtp.password is not None
    assert smtp.password.get_secret_value() == "hunter2"
    assert smtp.use_tls is False
    assert smtp.has_credentials
    assert "hunter2" not in repr(smtp)


def test_blank_credentials_count_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SMTP_USERNAME", "  ")
    monkeypatch.setenv("SMTP_PASSWORD", "")

    smtp = load_config_from_env().smtp

    assert smtp.username is None
    assert smtp.password is None
    assert not smtp.has_credentials


def test_channel_and_policy_parsing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALERT_CHANNEL", "SMS")
    monkeypatch.setenv("ALERT_MAX_CONCURRENT_SENDS", "3")
    monkeypatch.setenv("REMINDER_FAILURE_POLICY", "abort")

    config = load_config_from_env()

    assert config.dispatch.channel == ChannelKind.SMS
    assert config.dispatch.max_concurrent_sends == 3
    assert config.reminders.failure_policy == FailurePolicy.ABORT_ON_FIRST_FAILURE


def test_unknown_channel_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALERT_CHANNEL", "pigeon")

    with pytest.raises(ValueError):
        load_config_from_env()


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    monkeypatch.setenv("LOG_LEVEL", "unknown")
    assert load_config_from_env().logging.level == "INFO"

    monkeypatch.setenv("LOG_LEVEL", "error")
    assert load_config_from_env().logging.level == "ERROR"


def test_get_config_cache() -> None:
    assert get_config() is get_config()


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ValueError):
        SmtpSettings(port=0)
    with pytest.raises(ValueError):
        DispatchSettings(max_concurrent_sends=0)
    with pytest.raises(ValueError):
        DispatchSettings(send_timeout_seconds=0)


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(environment="production", debug=True)


def test_config_summary_never_prints_smtp_settings(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("SMTP_HOST", "relay.internal")
    monkeypatch.setenv("SMTP_PORT", "2525")
    monkeypatch.setenv("SMTP_USERNAME", "sender@relay.internal")
    monkeypatch.setenv("SMTP_PASSWORD", "hunter2")

    print_config_summary()

    out = capsys.readouterr().out
    assert "SMTP Credentials: configured" in out
    for secret in ("relay.internal", "2525", "sender@relay.internal", "hunter2"):
        assert secret not in out
