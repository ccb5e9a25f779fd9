"""Pydantic models for filings, embedded documents and subscriptions.

These models define the shapes that flow through the ingestion pipeline and
the documents persisted in MongoDB.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FilingAction = Literal["create", "update", "skip"]
DocumentFormat = Literal["xml", "pdf", "xbrl", "other"]


class FilingReference(BaseModel):
    """One line of a daily index, pending a dedup decision.

    Attributes:
        cik: Central Index Key of the filer listed in the index.
        company_name: Company (or person) name listed in the index.
        form_type: Declared form type (e.g. '4').
        date_filed: Filing date.
        file_name: Archive path of the full submission text.
        filing_id: Accession id derived from `file_name`.
        action: Dedup decision, unset until the deduplicator runs.
    """
    model_config = ConfigDict(extra="forbid")
    cik: str
    company_name: str
    form_type: str
    date_filed: date
    file_name: str
    filing_id: str
    action: FilingAction | None = None


class EmbeddedDocument(BaseModel):
    """One `<DOCUMENT>` section of a submission."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    type: str | None = None
    sequence: int | None = None
    description: str | None = None
    file_name: str | None = None
    format: DocumentFormat
    raw_content: str
    size: int = Field(..., ge=0)


class OwnershipFiling(BaseModel):
    """A persisted ownership filing (form 3, 4 or 5).

    Attributes:
        filing_id: Accession id, unique across the store.
        form_type: Declared form type.
        date_filed: Filing date.
        ingested_at: Set once when the filing is first stored.
        embedded_documents: All extracted document sections.
        form_data: Fully parsed form, or ``None`` when parsing was not possible.
    """
    model_config = ConfigDict(extra="forbid")
    filing_id: str
    form_type: str
    date_filed: date
    ingested_at: datetime
    embedded_documents: list[EmbeddedDocument] = Field(default_factory=list)
    form_data: dict[str, Any] | None = None


class NotificationSubscription(BaseModel):
    """Saved filter set of a user; empty lists match everything."""
    model_config = ConfigDict(extra="ignore")
    id: str
    subscriber: str
    description: str = ""
    issuer_ciks: list[str] = Field(default_factory=list)
    owner_ciks: list[str] = Field(default_factory=list)
    form_types: list[str] = Field(default_factory=list)
    created_at: datetime
    last_triggered: datetime | None = None

    def window_start(self) -> datetime:
        """Return the exclusive lower bound of the match window."""
        return self.last_triggered if self.last_triggered is not None else self.created_at


class User(BaseModel):
    """Subset of a user account needed to address a digest."""
    model_config = ConfigDict(extra="ignore")
    id: str
    email: str
    name: str | None = None
