"""Ingestion run: discovery, fetch, dedup, extraction and persistence.

One call to `IngestionOrchestrator.run` moves through the states
``DISCOVERING -> FETCHING -> DEDUPLICATING -> EXTRACTING -> PERSISTING ->
NOTIFYING`` and back to ``IDLE``; any unhandled error moves it to ``FAILED``
and is raised as `RunError`. Failures that concern a single filing (its
download or its persistence) are logged and counted in the `RunReport`
instead; a failing notification step is logged and never fails the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from dask import compute, delayed  # type: ignore[attr-defined]

from insider_monitor.config import DEFAULT_FORM_TYPES
from insider_monitor.exceptions import (
    ConfigurationError,
    FormParseError,
    PersistenceError,
    RemoteFetchError,
    RunError,
)
from insider_monitor.ingest.dedup import FilingDeduplicator
from insider_monitor.ingest.discover import discover_index_paths
from insider_monitor.ingest.parse_index import parse_master_idx
from insider_monitor.models import EmbeddedDocument, FilingAction, FilingReference, OwnershipFiling
from insider_monitor.parse.documents import extract_embedded_documents, find_primary_document
from insider_monitor.parse.ownership import parse_ownership_form

log = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    FETCHING = "fetching"
    DEDUPLICATING = "deduplicating"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    FAILED = "failed"


class PersistState(Enum):
    WITH_FORM = "with_form"
    WITHOUT_FORM = "without_form"
    ABANDONED = "abandoned"


class ArchiveFetcher(Protocol):
    def fetch_text(self, path: str) -> str: ...

    def fetch_json(self, path: str) -> Any: ...


class FilingStore(Protocol):
    def latest_date_filed(self) -> date | None: ...

    def get_filing_date(self, filing_id: str) -> date | None: ...

    def insert_filing(self, filing: OwnershipFiling) -> None: ...

    def replace_filing(self, filing: OwnershipFiling) -> None: ...


@dataclass
class PreparedFiling:
    """A fetched and extracted filing waiting to be stored."""
    ref: FilingReference
    documents: list[EmbeddedDocument]
    form_data: dict[str, Any] | None


@dataclass
class RunReport:
    """Counters of one ingestion run."""
    index_files: int = 0
    discovered: int = 0
    pending: int = 0
    persisted: int = 0
    with_form: int = 0
    without_form: int = 0
    fetch_failures: int = 0
    persist_failures: int = 0
    notifications_sent: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_persist_state(state: PersistState) -> PersistState:
    """Return the state to retry with after a failed write in `state`."""
    if state is PersistState.WITH_FORM:
        return PersistState.WITHOUT_FORM
    return PersistState.ABANDONED


def write_filing(store: FilingStore, filing: OwnershipFiling, action: FilingAction | None) -> bool:
    """Insert or overwrite a filing according to its action.

    Returns:
        False when the action is neither ``create`` nor ``update``.
    """
    if action == "create":
        store.insert_filing(filing)
    elif action == "update":
        store.replace_filing(filing)
    else:
        log.warning("Skipping filing %s with action %r", filing.filing_id, action)
        return False
    return True


def persist_filing(
    store: FilingStore,
    filing: OwnershipFiling,
    action: FilingAction | None,
) -> PersistState | None:
    """Store a filing, degrading to ``form_data=None`` after a failed write.

    Returns:
        The state the filing was stored in, or ``None`` if the action was a skip.

    Raises:
        PersistenceError: when the write without form data fails as well.
    """
    state = PersistState.WITH_FORM if filing.form_data is not None else PersistState.WITHOUT_FORM
    while True:
        candidate = filing if state is PersistState.WITH_FORM else filing.model_copy(update={"form_data": None})
        try:
            return state if write_filing(store, candidate, action) else None
        except PersistenceError as exc:
            state = next_persist_state(state)
            if state is PersistState.ABANDONED:
                raise
            log.warning("Storing %s with form data failed (%s); retrying without", filing.filing_id, exc)


def prepare_filing(submission: str, ref: FilingReference) -> PreparedFiling:
    """Extract documents from a submission and parse its primary document."""
    documents = extract_embedded_documents(submission)
    primary = find_primary_document(documents, ref.form_type)

    form_data = None
    if primary is None:
        log.debug("No primary document in filing %s", ref.file_name)
    else:
        try:
            form_data = parse_ownership_form(primary.raw_content)
        except FormParseError as exc:
            log.warning("Parsing form of filing %s failed: %s", ref.file_name, exc)

    return PreparedFiling(ref=ref, documents=documents, form_data=form_data)


class IngestionOrchestrator:
    """Compose one ingestion run over the archive and the store.

    Args:
        store: Filing store.
        fetcher: Rate-limited archive fetcher.
        form_types: Form types to keep from the daily indexes.
        notifier: Optional callable run after persistence; returns the number
            of digests sent. A `ConfigurationError` from it disables
            notifications for the run.
        workers: Threads used to fetch submissions.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: FilingStore,
        fetcher: ArchiveFetcher,
        form_types: Iterable[str] = DEFAULT_FORM_TYPES,
        notifier: Callable[[], int] | None = None,
        workers: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.form_types = frozenset(form_types)
        self.notifier = notifier
        self.workers = max(1, workers)
        self._clock = clock
        self.deduplicator = FilingDeduplicator(store)
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        log.debug("Run state: %s -> %s", self.state.value, state.value)
        self.state = state

    # -------------------------
    # Steps
    # -------------------------
    def reference_date(self) -> date:
        """Latest stored filing date, or yesterday for an empty store."""
        latest = self.store.latest_date_filed()
        return latest if latest is not None else self._clock().date() - timedelta(days=1)

    def collect_references(self, index_paths: list[str]) -> list[FilingReference]:
        refs: list[FilingReference] = []
        for path in index_paths:
            refs.extend(parse_master_idx(self.fetcher.fetch_text(path)))
        log.info("Found %d potentially relevant filings", len(refs))

        refs = [r for r in refs if r.form_type in self.form_types]
        log.info(
            "%d filings remaining after filtering for form types %s",
            len(refs),
            sorted(self.form_types),
        )
        return refs

    def _fetch_and_prepare(self, ref: FilingReference) -> PreparedFiling | None:
        try:
            submission = self.fetcher.fetch_text(ref.file_name)
        except RemoteFetchError as exc:
            log.error("Fetching filing %s failed: %s", ref.file_name, exc)
            return None
        log.debug("Successfully fetched filing %s", ref.file_name)
        return prepare_filing(submission, ref)

    def prepare_all(self, pending: list[FilingReference]) -> list[PreparedFiling | None]:
        if not pending:
            return []
        tasks = [delayed(self._fetch_and_prepare)(ref) for ref in pending]
        return list(compute(*tasks, scheduler="threads", num_workers=self.workers))

    def persist_all(self, prepared: list[PreparedFiling], report: RunReport) -> None:
        for item in prepared:
            filing = OwnershipFiling(
                filing_id=item.ref.filing_id,
                form_type=item.ref.form_type,
                date_filed=item.ref.date_filed,
                ingested_at=self._clock(),
                embedded_documents=item.documents,
                form_data=item.form_data,
            )
            try:
                state = persist_filing(self.store, filing, item.ref.action)
            except PersistenceError as exc:
                report.persist_failures += 1
                log.error("Storing filing %s failed: %s", item.ref.file_name, exc)
                continue
            if state is None:
                continue
            report.persisted += 1
            if state is PersistState.WITH_FORM:
                report.with_form += 1
            else:
                report.without_form += 1
            log.info("Stored filing %s (%s, %s)", item.ref.file_name, item.ref.action, state.value)

    def notify(self) -> int:
        if self.notifier is None:
            return 0
        try:
            return self.notifier()
        except ConfigurationError as exc:
            log.warning("Notifications disabled for this run: %s", exc)
            return 0
        except Exception:
            # the run outcome reflects ingestion only
            log.exception("Sending notifications failed")
            return 0

    # -------------------------
    # Run
    # -------------------------
    def run(self) -> RunReport:
        """Execute one full ingestion run.

        Raises:
            RunError: when any step fails outside per-filing isolation.
        """
        report = RunReport()
        try:
            self._enter(RunState.DISCOVERING)
            reference = self.reference_date()
            index_paths = discover_index_paths(self.fetcher, reference)
            report.index_files = len(index_paths)
            log.info("Found %d daily indexes since %s", len(index_paths), reference)

            self._enter(RunState.FETCHING)
            refs = self.collect_references(index_paths)
            report.discovered = len(refs)

            self._enter(RunState.DEDUPLICATING)
            pending = self.deduplicator.resolve(refs)
            report.pending = len(pending)

            self._enter(RunState.EXTRACTING)
            results = self.prepare_all(pending)
            prepared = [r for r in results if r is not None]
            report.fetch_failures = len(results) - len(prepared)

            self._enter(RunState.PERSISTING)
            self.persist_all(prepared, report)

            self._enter(RunState.NOTIFYING)
            report.notifications_sent = self.notify()
        except Exception as exc:
            failed_in = self.state
            self._enter(RunState.FAILED)
            raise RunError(f"Ingestion run failed while {failed_in.value}: {exc}") from exc

        self._enter(RunState.IDLE)
        log.info(
            "Run complete: %d stored (%d with form data), %d fetch failures, %d storage failures",
            report.persisted,
            report.with_form,
            report.fetch_failures,
            report.persist_failures,
        )
        return report


class IncompleteFilingStore(Protocol):
    def incomplete_filings(self) -> Iterable[OwnershipFiling]: ...

    def set_form_data(self, filing_id: str, form_data: dict[str, Any]) -> None: ...


def reparse_incomplete_filings(store: IncompleteFilingStore) -> tuple[int, int]:
    """Parse stored filings whose `form_data` is missing.

    Returns:
        Tuple ``(repaired, still_incomplete)``.
    """
    repaired = 0
    remaining = 0
    for filing in store.incomplete_filings():
        primary = find_primary_document(filing.embedded_documents, filing.form_type)
        if primary is None:
            remaining += 1
            continue
        try:
            form_data = parse_ownership_form(primary.raw_content)
        except FormParseError as exc:
            log.warning("Filing %s still cannot be parsed: %s", filing.filing_id, exc)
            remaining += 1
            continue
        store.set_form_data(filing.filing_id, form_data)
        repaired += 1
    log.info("Re-parsed %d incomplete filings (%d still incomplete)", repaired, remaining)
    return repaired, remaining
