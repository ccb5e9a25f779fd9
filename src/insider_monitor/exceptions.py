"""Exception hierarchy for the ingestion pipeline.

All errors derive from `InsiderMonitorError` so callers can catch every
project error with a single clause:

    InsiderMonitorError
    ├── ConfigurationError  missing/invalid environment settings
    ├── RemoteFetchError    non-2xx status or transport failure
    ├── FormParseError      malformed ownership form XML
    ├── PersistenceError    MongoDB write failure
    └── RunError            unhandled failure of a whole ingestion run
"""

from __future__ import annotations


class InsiderMonitorError(Exception):
    """Base class for all project errors."""


class ConfigurationError(InsiderMonitorError):
    """Raised when a required setting is missing or invalid."""


class RemoteFetchError(InsiderMonitorError):
    """Raised when a request to the EDGAR archive fails.

    Attributes:
        path: Archive path that was requested.
        status: HTTP status code, or ``None`` for transport failures.
    """

    def __init__(self, path: str, status: int | None, reason: str = "") -> None:
        self.path = path
        self.status = status
        self.reason = reason
        detail = f"status {status}" if status is not None else "transport failure"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(f"Fetching {path} failed: {detail}")


class FormParseError(InsiderMonitorError):
    """Raised when an ownership form cannot be parsed completely."""


class PersistenceError(InsiderMonitorError):
    """Raised when writing to the store fails."""


class RunError(InsiderMonitorError):
    """Raised when an ingestion run fails as a whole."""
