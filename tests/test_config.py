from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest

from insider_monitor.config import DEFAULT_FORM_TYPES, get_mail_settings, get_settings
from insider_monitor.exceptions import ConfigurationError

PIPELINE_VARS = (
    "MONGO_URI", "MONGO_DB", "MONGO_TLS", "SEC_USER_AGENT", "EDGAR_BASE_URL",
    "EDGAR_REQUESTS_PER_SECOND", "FORM_TYPES", "FETCH_WORKERS", "SCHEDULE_TIME",
    "SCHEDULE_TIMEZONE", "MAX_ATTEMPTS", "RETRY_DELAY_MINUTES", "LOG_LEVEL", "LOG_FILE",
)
MAIL_VARS = (
    "SMTP_HOST", "SMTP_PORT", "SMTP_USE_SSL", "SMTP_USERNAME", "SMTP_PASSWORD",
    "SMTP_FROM_NAME", "SMTP_FROM_ADDRESS", "SERVER_FQDN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in PIPELINE_VARS + MAIL_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_user_agent_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="SEC_USER_AGENT"):
        get_settings()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEC_USER_AGENT", "Jane Doe jane@example.com")
    s = get_settings()

    assert s.mongo_uri == "mongodb://localhost:27017"
    assert s.mongo_tls is False
    assert s.edgar_base_url == "https://www.sec.gov/Archives"
    assert s.requests_per_second == 5
    assert s.form_types == DEFAULT_FORM_TYPES
    assert s.schedule_time == time(0, 0)
    assert s.schedule_timezone == "America/New_York"
    assert (s.max_attempts, s.retry_delay_minutes) == (3, 60.0)
    assert s.log_level == "INFO"
    assert s.log_file is None


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEC_USER_AGENT", "Jane Doe jane@example.com")
    monkeypatch.setenv("FORM_TYPES", "4, 4/A ,")
    monkeypatch.setenv("SCHEDULE_TIME", "06:30")
    monkeypatch.setenv("MONGO_TLS", "true")
    monkeypatch.setenv("FETCH_WORKERS", "0")
    monkeypatch.setenv("LOG_FILE", "logs/run.log")
    monkeypatch.setenv("EDGAR_BASE_URL", "http://mirror.local/Archives/")
    s = get_settings()

    assert s.form_types == ("4", "4/A")
    assert s.schedule_time == time(6, 30)
    assert s.mongo_tls is True
    assert s.fetch_workers == 1
    assert s.log_file == Path("logs/run.log")
    assert s.edgar_base_url == "http://mirror.local/Archives"


@pytest.mark.parametrize(
    "name,value",
    [
        ("MAX_ATTEMPTS", "three"),
        ("SCHEDULE_TIME", "midnight"),
        ("SCHEDULE_TIMEZONE", "Mars/Olympus_Mons"),
        ("EDGAR_REQUESTS_PER_SECOND", "0"),
    ],
)
def test_malformed_values_are_configuration_errors(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv("SEC_USER_AGENT", "Jane Doe jane@example.com")
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError, match=name):
        get_settings()


def test_mail_settings_list_missing_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    with pytest.raises(ConfigurationError) as info:
        get_mail_settings()
    message = str(info.value)
    assert "SMTP_FROM_ADDRESS" in message and "SERVER_FQDN" in message
    assert "SMTP_HOST" not in message


def test_mail_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_FROM_NAME", "Insider Monitor")
    monkeypatch.setenv("SMTP_FROM_ADDRESS", "noreply@example.com")
    monkeypatch.setenv("SERVER_FQDN", "insider.example.com")
    monkeypatch.setenv("SMTP_USE_SSL", "1")
    m = get_mail_settings()

    assert m.port == 25
    assert m.use_ssl is True
    assert m.username is None and m.password is None
