"""Parsing helpers for SEC master idx files.

`parse_master_idx` converts the pipe-delimited text of a daily (or quarterly)
master index into `FilingReference` records, in file order.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from pathlib import PurePosixPath

from insider_monitor.models import FilingReference

log = logging.getLogger(__name__)

HEADER_END_RE = re.compile(r"^-+$")
FIELD_COUNT = 5
DATE_FORMATS = ("%Y%m%d", "%Y-%m-%d")


def filing_id_from_path(path: str) -> str:
    """Return the accession id of a submission path.

    ``edgar/data/1234/0001234567-24-000001.txt`` -> ``0001234567-24-000001``
    """
    return PurePosixPath(path.rsplit("/", 1)[-1]).stem


def _parse_date(raw: str) -> date | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def parse_master_idx(text: str, separator: str = "|") -> list[FilingReference]:
    """Parse a `master.idx` document into filing references.

    Lines before the dashed header terminator are ignored. Data lines with the
    wrong number of fields or an unreadable date are skipped.

    Args:
        text: Full index document.
        separator: Field separator (``|`` for master indexes).

    Returns:
        List of `FilingReference` with `action` unset.
    """
    refs: list[FilingReference] = []
    header_passed = False
    skipped = 0

    for ln in text.splitlines():
        ln = ln.strip()
        if not header_passed:
            header_passed = bool(HEADER_END_RE.match(ln))
            continue
        if not ln:
            continue

        fields = ln.split(separator)
        if len(fields) != FIELD_COUNT:
            skipped += 1
            continue
        cik, company, form, raw_date, filename = (f.strip() for f in fields)
        date_filed = _parse_date(raw_date)
        if date_filed is None or not filename:
            skipped += 1
            continue

        refs.append(
            FilingReference(
                cik=cik,
                company_name=company,
                form_type=form,
                date_filed=date_filed,
                file_name=filename,
                filing_id=filing_id_from_path(filename),
            )
        )

    if skipped:
        log.debug("Skipped %d malformed index lines", skipped)
    return refs
