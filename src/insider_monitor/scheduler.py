"""Daily scheduling of ingestion runs with single-flight and bounded retries."""

from __future__ import annotations

import logging
import threading
import time as _time
from datetime import datetime, time, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

log = logging.getLogger(__name__)


class SingleFlight:
    """Non-blocking guard allowing at most one holder at a time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


def next_run_after(now: datetime, run_at: time, tz: ZoneInfo) -> datetime:
    """Return the first occurrence of `run_at` in `tz` strictly after `now`."""
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), run_at, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), run_at, tzinfo=tz)
    return candidate


class Scheduler:
    """Run `job` once a day, retrying failures a bounded number of times.

    Args:
        job: Callable executing one full run; any exception counts as failure.
        run_at: Local wall-clock time of the daily trigger.
        timezone: IANA time zone of `run_at`.
        max_attempts: Attempts per trigger, including the first.
        retry_delay: Seconds to wait between attempts.
        sleep: Sleep function used between attempts.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        job: Callable[[], object],
        run_at: time = time(0, 0),
        timezone: str = "America/New_York",
        max_attempts: int = 3,
        retry_delay: float = 3600.0,
        sleep: Callable[[float], None] = _time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.job = job
        self.run_at = run_at
        self.tz = ZoneInfo(timezone)
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._flight = SingleFlight()
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        return self._flight.busy

    def trigger(self) -> bool:
        """Start a run unless one is already in flight.

        Returns:
            True if the run (possibly after retries) succeeded; False if it
            failed on every attempt or was dropped because a run was active.
        """
        if not self._flight.acquire():
            log.warning("A run is already in progress. Skipping this trigger.")
            return False
        try:
            return self._run_with_retries()
        finally:
            self._flight.release()

    def _run_with_retries(self) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            log.info("Starting run (attempt %d/%d)", attempt, self.max_attempts)
            try:
                self.job()
            except Exception as exc:
                log.error("Run attempt %d/%d failed: %s", attempt, self.max_attempts, exc)
                if attempt < self.max_attempts:
                    log.info("Retrying in %.0f seconds...", self.retry_delay)
                    self._sleep(self.retry_delay)
                continue
            log.info("Run completed successfully")
            return True

        log.error(
            "Run finally failed after %d attempts. Waiting for next scheduled trigger...",
            self.max_attempts,
        )
        return False

    def stop(self) -> None:
        self._stop.set()

    def serve_forever(self) -> None:
        """Block, triggering a run at every scheduled time until `stop`."""
        log.info(
            "Scheduled daily run at %s (%s), max attempts %d, retry delay %.0fs",
            self.run_at.strftime("%H:%M"),
            self.tz.key,
            self.max_attempts,
            self.retry_delay,
        )
        while not self._stop.is_set():
            now = self._clock()
            due = next_run_after(now, self.run_at, self.tz)
            log.info("Next run at %s", due.isoformat())
            if self._stop.wait((due - now).total_seconds()):
                break
            self.trigger()
