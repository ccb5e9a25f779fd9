"""Discovery of daily index files not yet ingested.

The EDGAR daily-index tree is laid out as ``<year>/QTR<n>/master.<YYYYMMDD>.idx``
with a JSON listing (``index.json``) in every directory. `discover_index_paths`
walks it with an explicit worklist, pruning years, quarters and days that lie
before the reference date.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol

log = logging.getLogger(__name__)

DAILY_INDEX_ROOT = "edgar/daily-index/"

YEAR_RE = re.compile(r"^\d{4}$")
QUARTER_RE = re.compile(r"^QTR([1-4])$")
DAY_RE = re.compile(r"^master\.(\d{8})\.idx$")


class ListingFetcher(Protocol):
    def fetch_json(self, path: str) -> Any: ...


class Level(Enum):
    ROOT = 0
    YEAR = 1
    QUARTER = 2


def quarter_of(d: date) -> int:
    return (d.month - 1) // 3 + 1


def listing_items(listing: Any) -> list[dict[str, Any]]:
    """Return the ``directory.item`` array of a listing, sorted by name."""
    try:
        items = listing["directory"]["item"]
    except (KeyError, TypeError):
        log.warning("Directory listing without directory.item; treating as empty")
        return []
    return sorted((i for i in items if isinstance(i, dict)), key=lambda i: str(i.get("name", "")))


def _href(item: dict[str, Any], is_dir: bool) -> str:
    href = str(item.get("href") or item.get("name", ""))
    if is_dir and not href.endswith("/"):
        href += "/"
    return href


def _year_is_relevant(item: dict[str, Any], reference: date) -> bool:
    name = str(item.get("name", ""))
    if item.get("type") != "dir" or not YEAR_RE.match(name):
        log.debug("Skipping non-year item '%s' of type '%s'", name, item.get("type"))
        return False
    if int(name) < reference.year:
        log.debug("Skipping irrelevant year '%s'", name)
        return False
    return True


def _quarter_is_relevant(item: dict[str, Any], year: int, reference: date) -> bool:
    name = str(item.get("name", ""))
    m = QUARTER_RE.match(name)
    if item.get("type") != "dir" or not m:
        log.debug("Skipping non-quarter item '%s' in year %d", name, year)
        return False
    if year == reference.year and int(m.group(1)) < quarter_of(reference):
        log.debug("Skipping irrelevant quarter '%s' of year %d", name, year)
        return False
    return True


def _day_of(item: dict[str, Any]) -> date | None:
    name = str(item.get("name", ""))
    m = DAY_RE.match(name)
    if item.get("type") != "file" or not m:
        log.debug("Skipping non-master-idx item '%s'", name)
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d").date()
    except ValueError:
        log.debug("Skipping master idx with invalid date '%s'", name)
        return None


def discover_index_paths(fetcher: ListingFetcher, reference: date) -> list[str]:
    """Return daily master index paths dated on or after `reference`.

    Args:
        fetcher: Object providing `fetch_json(path)` for directory listings.
        reference: Oldest filing date still of interest.

    Returns:
        Archive paths of `master.<YYYYMMDD>.idx` files, oldest first.
    """
    found: list[tuple[date, str]] = []
    # (level, directory path relative to the archive, year of the directory)
    work: deque[tuple[Level, str, int]] = deque([(Level.ROOT, DAILY_INDEX_ROOT, 0)])

    while work:
        level, prefix, year = work.popleft()
        items = listing_items(fetcher.fetch_json(f"{prefix}index.json"))

        for item in items:
            if level is Level.ROOT:
                if _year_is_relevant(item, reference):
                    work.append((Level.YEAR, prefix + _href(item, True), int(item["name"])))
            elif level is Level.YEAR:
                if _quarter_is_relevant(item, year, reference):
                    work.append((Level.QUARTER, prefix + _href(item, True), year))
            else:
                day = _day_of(item)
                if day is None:
                    continue
                if day < reference:
                    log.debug("Skipping irrelevant day '%s'", item.get("name"))
                    continue
                found.append((day, prefix + _href(item, False)))

    found.sort()
    return [path for _, path in found]
