"""Deduplication of discovered filings against the store."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Protocol

from insider_monitor.models import FilingAction, FilingReference

log = logging.getLogger(__name__)


class FilingDateLookup(Protocol):
    def get_filing_date(self, filing_id: str) -> date | None: ...


def decide_action(stored: date | None, discovered: date) -> FilingAction:
    """Return the action for a filing given its stored and discovered dates."""
    if stored is None:
        return "create"
    if stored < discovered:
        return "update"
    return "skip"


def unique_by_filing_id(refs: Iterable[FilingReference]) -> list[FilingReference]:
    """Drop repeated filing ids, keeping the first occurrence."""
    seen: dict[str, FilingReference] = {}
    for ref in refs:
        seen.setdefault(ref.filing_id, ref)
    return list(seen.values())


class FilingDeduplicator:
    """Tag references with create/update/skip and drop the skipped ones."""

    def __init__(self, store: FilingDateLookup) -> None:
        self.store = store

    def tag(self, refs: Iterable[FilingReference]) -> list[FilingReference]:
        """Return de-duplicated copies of `refs` with `action` set."""
        unique = unique_by_filing_id(refs)
        log.info("%d filings remaining after filtering duplicates", len(unique))
        return [
            ref.model_copy(
                update={"action": decide_action(self.store.get_filing_date(ref.filing_id), ref.date_filed)}
            )
            for ref in unique
        ]

    def resolve(self, refs: Iterable[FilingReference]) -> list[FilingReference]:
        """Return the references that need a create or an update."""
        pending = [ref for ref in self.tag(refs) if ref.action != "skip"]
        log.info(
            "%d filings remaining after filtering those already stored and up to date",
            len(pending),
        )
        return pending
