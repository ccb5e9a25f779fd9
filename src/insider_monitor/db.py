"""MongoDB helpers and the store used by the pipeline.

Centralizes creation of Mongo clients and wraps the collections the pipeline
reads and writes (`ownership_filings`, `notification_subscriptions`, `users`)
behind `MongoStore`, translating driver errors into `PersistenceError`.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from itertools import groupby
from typing import Any, Iterator

import certifi
from bson import ObjectId
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from insider_monitor.exceptions import PersistenceError
from insider_monitor.models import NotificationSubscription, OwnershipFiling, User

log = logging.getLogger(__name__)

FILINGS = "ownership_filings"
SUBSCRIPTIONS = "notification_subscriptions"
USERS = "users"

ISSUER_CIK_FIELD = "form_data.issuer.issuerCik"
OWNER_CIK_FIELD = "form_data.reportingOwner.reportingOwnerId.rptOwnerCik"

REQUIRED_INDEXES: list[tuple[str, list[tuple[str, int]], bool]] = [
    ("filingId_index", [("filing_id", ASCENDING)], True),
    ("dateFiled_index", [("date_filed", DESCENDING)], False),
    ("formType_index", [("form_type", ASCENDING)], False),
    ("ingestedAt_index", [("ingested_at", ASCENDING)], False),
    ("periodOfReport_index", [("form_data.periodOfReport", DESCENDING)], False),
    ("issuerCik_index", [(ISSUER_CIK_FIELD, ASCENDING)], False),
    ("issuerName_index", [("form_data.issuer.issuerName", ASCENDING)], False),
    ("issuerTicker_index", [("form_data.issuer.issuerTradingSymbol", ASCENDING)], False),
    ("reportingOwnerCik_index", [(OWNER_CIK_FIELD, ASCENDING)], False),
    (
        "reportingOwnerName_index",
        [("form_data.reportingOwner.reportingOwnerId.rptOwnerName", ASCENDING)],
        False,
    ),
]


def get_client(uri: str, tls: bool = False) -> MongoClient:
    """Return a configured PyMongo MongoClient for the provided URI.

    Args:
        uri: MongoDB connection URI.
        tls: Connect with TLS using the certifi CA bundle.

    Returns:
        Configured MongoClient instance returning timezone-aware datetimes.
    """
    options: dict[str, Any] = {
        "tz_aware": True,
        "serverSelectionTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
    }
    if tls:
        options.update(tls=True, tlsCAFile=certifi.where())
    return MongoClient(uri, **options)


def get_db(
    client: MongoClient[dict[str, Any]],
    db_name: str,
) -> Database[dict[str, Any]]:
    """Return the named Database instance from a MongoClient.

    Args:
        client: PyMongo MongoClient.
        db_name: Database name.

    Returns:
        A Database object.
    """
    return client[db_name]


def _normalize_value(value: Any) -> Any:
    """Recursively convert non-BSON-safe types to Mongo-safe types."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, dict):
        return {k: _normalize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_value(v) for v in value]
    return value


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _id_filter(raw_id: str) -> dict[str, Any]:
    return {"_id": ObjectId(raw_id) if ObjectId.is_valid(raw_id) else raw_id}


def filing_to_doc(filing: OwnershipFiling) -> dict[str, Any]:
    """Return the Mongo document for a filing."""
    return _normalize_value(filing.model_dump(mode="python"))


def filing_from_doc(doc: dict[str, Any]) -> OwnershipFiling:
    """Build an `OwnershipFiling` from a stored document."""
    data = {k: v for k, v in doc.items() if k != "_id"}
    data["date_filed"] = _as_date(data["date_filed"])
    return OwnershipFiling.model_validate(data)


def subscription_from_doc(doc: dict[str, Any]) -> NotificationSubscription:
    """Build a `NotificationSubscription` from a stored document."""
    data = {k: v for k, v in doc.items() if k != "_id"}
    data["id"] = str(doc["_id"])
    data["subscriber"] = str(doc["subscriber"])
    return NotificationSubscription.model_validate(data)


def build_subscription_query(
    subscription: NotificationSubscription,
    until: datetime,
) -> dict[str, Any]:
    """Return the Mongo filter selecting filings for one subscription.

    The window is ``(window_start, until]`` on `ingested_at`; each non-empty
    list narrows the result, empty lists do not filter.
    """
    query: dict[str, Any] = {
        "ingested_at": {"$gt": subscription.window_start(), "$lte": until},
    }
    if subscription.issuer_ciks:
        query[ISSUER_CIK_FIELD] = {"$in": subscription.issuer_ciks}
    if subscription.owner_ciks:
        query[OWNER_CIK_FIELD] = {"$in": subscription.owner_ciks}
    if subscription.form_types:
        query["form_type"] = {"$in": subscription.form_types}
    return query


class MongoStore:
    """Store operations consumed by the pipeline, backed by MongoDB."""

    def __init__(self, db: Database[dict[str, Any]]) -> None:
        self.db = db
        self.filings = db[FILINGS]
        self.subscriptions = db[SUBSCRIPTIONS]
        self.users = db[USERS]

    # -------------------------
    # Filings
    # -------------------------
    def latest_date_filed(self) -> date | None:
        doc = self.filings.find_one({}, {"date_filed": True}, sort=[("date_filed", DESCENDING)])
        return _as_date(doc["date_filed"]) if doc else None

    def get_filing_date(self, filing_id: str) -> date | None:
        doc = self.filings.find_one({"filing_id": filing_id}, {"date_filed": True})
        return _as_date(doc["date_filed"]) if doc else None

    def insert_filing(self, filing: OwnershipFiling) -> None:
        try:
            self.filings.insert_one(filing_to_doc(filing))
        except PyMongoError as exc:
            raise PersistenceError(f"Inserting filing {filing.filing_id} failed: {exc}") from exc

    def replace_filing(self, filing: OwnershipFiling) -> None:
        """Overwrite a stored filing by id, keeping its original `ingested_at`."""
        doc = filing_to_doc(filing)
        doc.pop("ingested_at", None)
        try:
            result = self.filings.update_one({"filing_id": filing.filing_id}, {"$set": doc})
        except PyMongoError as exc:
            raise PersistenceError(f"Updating filing {filing.filing_id} failed: {exc}") from exc
        if result.matched_count == 0:
            raise PersistenceError(f"Updating filing {filing.filing_id} failed: not stored")

    def incomplete_filings(self) -> Iterator[OwnershipFiling]:
        for doc in self.filings.find({"form_data": None}):
            yield filing_from_doc(doc)

    def set_form_data(self, filing_id: str, form_data: dict[str, Any]) -> None:
        try:
            self.filings.update_one(
                {"filing_id": filing_id},
                {"$set": {"form_data": _normalize_value(form_data)}},
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Updating form data of {filing_id} failed: {exc}") from exc

    # -------------------------
    # Subscriptions & users
    # -------------------------
    def subscriptions_by_user(self) -> dict[str, list[NotificationSubscription]]:
        """Return valid subscriptions grouped by subscriber; malformed documents are skipped."""
        subs: list[NotificationSubscription] = []
        try:
            cursor = self.subscriptions.find({}).sort([("subscriber", ASCENDING), ("created_at", ASCENDING)])
            for doc in cursor:
                try:
                    subs.append(subscription_from_doc(doc))
                except (ValidationError, KeyError) as exc:
                    log.warning("Skipping malformed subscription %s: %s", doc.get("_id"), exc)
        except PyMongoError as exc:
            raise PersistenceError(f"Reading subscriptions failed: {exc}") from exc
        return {user_id: list(group) for user_id, group in groupby(subs, key=lambda s: s.subscriber)}

    def find_matching_filings(
        self,
        subscription: NotificationSubscription,
        until: datetime,
    ) -> list[OwnershipFiling]:
        try:
            cursor = self.filings.find(
                build_subscription_query(subscription, until),
                {"embedded_documents": False},
            ).sort("ingested_at", ASCENDING)
            return [filing_from_doc(doc) for doc in cursor]
        except (PyMongoError, ValidationError) as exc:
            raise PersistenceError(f"Matching filings for subscription {subscription.id} failed: {exc}") from exc

    def update_last_triggered(self, subscription_id: str, triggered_at: datetime) -> None:
        # $max keeps last_triggered monotonically non-decreasing
        try:
            self.subscriptions.update_one(
                _id_filter(subscription_id),
                {"$max": {"last_triggered": triggered_at}},
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Updating subscription {subscription_id} failed: {exc}") from exc

    def get_user(self, user_id: str) -> User | None:
        try:
            doc = self.users.find_one(_id_filter(user_id))
            if doc is None:
                return None
            return User.model_validate({**doc, "id": str(doc["_id"])})
        except (PyMongoError, ValidationError) as exc:
            raise PersistenceError(f"Reading user {user_id} failed: {exc}") from exc

    # -------------------------
    # Maintenance
    # -------------------------
    def ensure_indexes(self) -> list[str]:
        """Create missing filing indexes and return the names created."""
        existing = set(self.filings.index_information())
        created: list[str] = []
        for name, keys, unique in REQUIRED_INDEXES:
            if name in existing:
                continue
            log.info("Creating index: %s", name)
            self.filings.create_index(keys, name=name, unique=unique)
            created.append(name)
        return created
