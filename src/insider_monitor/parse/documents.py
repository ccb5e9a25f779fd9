"""Extraction of embedded documents from a full submission text file."""

from __future__ import annotations

import re

from insider_monitor.models import DocumentFormat, EmbeddedDocument

DOCUMENT_RE = re.compile(r"<DOCUMENT>(.*?)</DOCUMENT>", re.DOTALL)

TAG_RES = {
    "type": re.compile(r"^<TYPE>([^\n]+)$", re.MULTILINE),
    "sequence": re.compile(r"^<SEQUENCE>([^\n]+)$", re.MULTILINE),
    "description": re.compile(r"^<DESCRIPTION>([^\n]+)$", re.MULTILINE),
    "file_name": re.compile(r"^<FILENAME>([^\n]+)$", re.MULTILINE),
}

# checked in order; the first tag with a non-empty payload wins
PAYLOAD_RES: list[tuple[DocumentFormat, re.Pattern[str]]] = [
    ("xml", re.compile(r"<XML>(.*?)</XML>", re.DOTALL)),
    ("pdf", re.compile(r"<PDF>(.*?)</PDF>", re.DOTALL)),
    ("xbrl", re.compile(r"<XBRL>(.*?)</XBRL>", re.DOTALL)),
    ("other", re.compile(r"<TEXT>(.*?)</TEXT>", re.DOTALL)),
]


def _tag(block: str, name: str) -> str | None:
    m = TAG_RES[name].search(block)
    if not m:
        return None
    return m.group(1).strip() or None


def _payload(block: str) -> tuple[DocumentFormat, str]:
    for fmt, pattern in PAYLOAD_RES:
        m = pattern.search(block)
        if m and m.group(1).strip():
            return fmt, m.group(1)
    return "other", block


def extract_embedded_document(block: str) -> EmbeddedDocument:
    """Build an `EmbeddedDocument` from the inside of one `<DOCUMENT>` block."""
    sequence = _tag(block, "sequence")
    fmt, payload = _payload(block)
    content = payload.strip()

    return EmbeddedDocument(
        type=_tag(block, "type"),
        sequence=int(sequence) if sequence and sequence.isdigit() else None,
        description=_tag(block, "description"),
        file_name=_tag(block, "file_name"),
        format=fmt,
        raw_content=content,
        size=len(content.encode("utf-8")),
    )


def extract_embedded_documents(submission: str) -> list[EmbeddedDocument]:
    """Return every embedded document of a submission, in file order.

    A submission without `<DOCUMENT>` blocks yields an empty list.
    """
    return [extract_embedded_document(m.group(1)) for m in DOCUMENT_RE.finditer(submission)]


def find_primary_document(
    documents: list[EmbeddedDocument],
    form_type: str,
) -> EmbeddedDocument | None:
    """Return the XML document whose type matches the filing's form type."""
    for doc in documents:
        if doc.format == "xml" and doc.type == form_type:
            return doc
    return None
