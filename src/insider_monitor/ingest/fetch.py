"""Rate-limited access to the SEC EDGAR archive.

`RateLimiter` spaces requests evenly so that at most `limit` requests start
within any `interval` seconds. One module-level limiter (`EDGAR_LIMITER`) is
shared by every `EdgarFetcher` in the process, so the budget holds no matter
how many threads issue requests.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests  # type: ignore[import-untyped]

from insider_monitor.exceptions import ConfigurationError, RemoteFetchError

log = logging.getLogger(__name__)

BASE = "https://www.sec.gov/Archives"

# SEC fair-access ceiling is 10 requests/second
EDGAR_RATE_LIMIT = 5
EDGAR_RATE_INTERVAL = 1.0


class RateLimiter:
    """Thread-safe limiter allowing `limit` requests per `interval` seconds."""

    def __init__(
        self,
        limit: int = EDGAR_RATE_LIMIT,
        interval: float = EDGAR_RATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._next = clock()
        self._lock = threading.Lock()
        self.configure(limit, interval)

    def configure(self, limit: int, interval: float = EDGAR_RATE_INTERVAL) -> None:
        """Change the budget in place; fetchers holding this limiter keep sharing it."""
        if limit < 1 or interval <= 0:
            raise ValueError("limit must be >= 1 and interval > 0")
        with self._lock:
            self.permit_interval = interval / limit

    def acquire(self) -> None:
        """Block until the caller may issue one request."""
        with self._lock:
            now = self._clock()
            if now < self._next:
                self._sleep(self._next - now)
            self._next = max(now, self._next) + self.permit_interval


EDGAR_LIMITER = RateLimiter()


class EdgarFetcher:
    """GET archive paths under the shared rate budget.

    Args:
        user_agent: Operator identification sent as `User-Agent`.
        base_url: Archive base URL.
        limiter: Rate limiter; defaults to the process-wide `EDGAR_LIMITER`.
        session: Optional `requests.Session` (one is created otherwise).
        timeout: Per-request timeout in seconds.

    Raises:
        ConfigurationError: if `user_agent` is blank.
    """

    def __init__(
        self,
        user_agent: str,
        base_url: str = BASE,
        limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
        timeout: float = 60.0,
    ) -> None:
        if not user_agent or not user_agent.strip():
            raise ConfigurationError("An operator identification (User-Agent) is required for EDGAR requests.")
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter or EDGAR_LIMITER
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent.strip(), "Accept-Encoding": "gzip, deflate"}

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def fetch(self, path: str) -> requests.Response:
        """Return the response for an archive path.

        Raises:
            RemoteFetchError: on a non-2xx status or a transport failure.
        """
        url = self.url_for(path)
        self.limiter.acquire()
        log.debug("GET %s", url)
        try:
            resp = self.session.get(url, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteFetchError(path, None, str(exc)) from exc
        if not resp.ok:
            raise RemoteFetchError(path, resp.status_code, resp.reason or "")
        return resp

    def fetch_text(self, path: str) -> str:
        resp = self.fetch(path)
        # requests falls back to ISO-8859-1 for text/* without a charset
        if "charset" not in resp.headers.get("Content-Type", "").lower():
            resp.encoding = "utf-8"
        return resp.text

    def fetch_json(self, path: str) -> Any:
        resp = self.fetch(path)
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteFetchError(path, resp.status_code, "invalid JSON") from exc
