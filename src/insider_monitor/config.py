"""Configuration helpers and Settings containers.

This module provides two frozen dataclasses: `Settings` for the ingestion
pipeline (read by `get_settings`, which refuses to continue without a
`SEC_USER_AGENT`) and `MailSettings` for the SMTP relay used by digest
notifications (read by `get_mail_settings`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from pathlib import Path
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from insider_monitor.exceptions import ConfigurationError

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_FORM_TYPES = ("3", "4", "5")


@dataclass(frozen=True)
class Settings:
    """Container for pipeline configuration read from the environment.

    Attributes:
        mongo_uri: MongoDB connection URI.
        mongo_db: Target MongoDB database name.
        mongo_tls: Whether to connect with TLS (certifi CA bundle).
        sec_user_agent: Required SEC User-Agent header for archive requests.
        edgar_base_url: Base URL of the EDGAR archive.
        requests_per_second: Shared request budget towards the archive.
        form_types: Form types kept after index parsing.
        fetch_workers: Threads used to fetch submissions concurrently.
        schedule_time: Wall-clock time of the daily run.
        schedule_timezone: IANA time zone of `schedule_time`.
        max_attempts: Attempts per scheduled run before giving up.
        retry_delay_minutes: Delay between failed attempts.
        log_level: Logging level name.
        log_file: Optional log file path.
    """
    mongo_uri: str
    mongo_db: str
    mongo_tls: bool
    sec_user_agent: str
    edgar_base_url: str
    requests_per_second: int
    form_types: tuple[str, ...]
    fetch_workers: int
    schedule_time: time
    schedule_timezone: str
    max_attempts: int
    retry_delay_minutes: float
    log_level: str
    log_file: Path | None


@dataclass(frozen=True)
class MailSettings:
    """SMTP relay configuration for outbound digests.

    Attributes:
        host: SMTP relay host.
        port: SMTP relay port.
        use_ssl: Connect with implicit TLS (SMTP over SSL).
        username: Optional login user.
        password: Optional login password.
        from_name: Display name of the sender.
        from_address: Envelope/header sender address.
        server_fqdn: Public host name used to build links in digests.
    """
    host: str
    port: int
    use_ssl: bool
    username: str | None
    password: str | None
    from_name: str
    from_address: str
    server_fqdn: str


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _parse_schedule_time(raw: str) -> time:
    """Parse an ``HH:MM`` string into a `datetime.time`."""
    try:
        hours, minutes = raw.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ConfigurationError(f"SCHEDULE_TIME must look like HH:MM, got {raw!r}") from exc


def _parse_timezone(raw: str) -> str:
    """Return `raw` if it names an IANA time zone available on this host."""
    name = raw.strip()
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"SCHEDULE_TIMEZONE is not a known time zone: {raw!r}") from exc
    return name


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        ConfigurationError: if `SEC_USER_AGENT` is not set in the environment
            or a numeric, schedule or time zone setting is malformed.
    """
    mongo_uri = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    mongo_db = os.getenv("MONGO_DB", "insider_monitor")
    sec_user_agent = os.getenv("SEC_USER_AGENT", "").strip()

    if not sec_user_agent:
        raise ConfigurationError(
            "SEC_USER_AGENT is required. Set it in .env "
            "(example: 'Your Name your.email@example.com')."
        )

    form_types = tuple(
        f.strip() for f in os.getenv("FORM_TYPES", ",".join(DEFAULT_FORM_TYPES)).split(",") if f.strip()
    )
    log_file = os.getenv("LOG_FILE", "").strip()
    requests_per_second = _env_int("EDGAR_REQUESTS_PER_SECOND", 5)
    if requests_per_second < 1:
        raise ConfigurationError(f"EDGAR_REQUESTS_PER_SECOND must be at least 1, got {requests_per_second}")

    return Settings(
        mongo_uri=mongo_uri,
        mongo_db=mongo_db,
        mongo_tls=_env_bool("MONGO_TLS", False),
        sec_user_agent=sec_user_agent,
        edgar_base_url=os.getenv("EDGAR_BASE_URL", "https://www.sec.gov/Archives").rstrip("/"),
        requests_per_second=requests_per_second,
        form_types=form_types or DEFAULT_FORM_TYPES,
        fetch_workers=max(1, _env_int("FETCH_WORKERS", 4)),
        schedule_time=_parse_schedule_time(os.getenv("SCHEDULE_TIME", "00:00")),
        schedule_timezone=_parse_timezone(os.getenv("SCHEDULE_TIMEZONE", "America/New_York")),
        max_attempts=max(1, _env_int("MAX_ATTEMPTS", 3)),
        retry_delay_minutes=_env_float("RETRY_DELAY_MINUTES", 60.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_file=Path(log_file) if log_file else None,
    )


def get_mail_settings() -> MailSettings:
    """Read the SMTP relay settings.

    Raises:
        ConfigurationError: if any of `SMTP_HOST`, `SMTP_FROM_ADDRESS`,
            `SMTP_FROM_NAME` or `SERVER_FQDN` is missing.
    """
    required = {
        name: os.getenv(name, "").strip()
        for name in ("SMTP_HOST", "SMTP_FROM_ADDRESS", "SMTP_FROM_NAME", "SERVER_FQDN")
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigurationError(f"Mail relay not configured, missing: {', '.join(missing)}")

    return MailSettings(
        host=required["SMTP_HOST"],
        port=_env_int("SMTP_PORT", 25),
        use_ssl=_env_bool("SMTP_USE_SSL", False),
        username=os.getenv("SMTP_USERNAME") or None,
        password=os.getenv("SMTP_PASSWORD") or None,
        from_name=required["SMTP_FROM_NAME"],
        from_address=required["SMTP_FROM_ADDRESS"],
        server_fqdn=required["SERVER_FQDN"],
    )
