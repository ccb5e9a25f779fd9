"""Test doubles and sample data shared across the test suite.

The fakes implement the methods the pipeline calls on `MongoStore`,
`EdgarFetcher` and `Mailer`, so orchestration and matching logic run without
MongoDB, network access or an SMTP relay.
"""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from insider_monitor.exceptions import PersistenceError, RemoteFetchError
from insider_monitor.models import NotificationSubscription, OwnershipFiling, User


FORM4_XML = """<?xml version="1.0"?>
<ownershipDocument>
    <schemaVersion>X0508</schemaVersion>
    <documentType>4</documentType>
    <periodOfReport>2024-01-02</periodOfReport>
    <notSubjectToSection16>0</notSubjectToSection16>
    <issuer>
        <issuerCik>0000320193</issuerCik>
        <issuerName>Apple Inc.</issuerName>
        <issuerTradingSymbol>AAPL</issuerTradingSymbol>
    </issuer>
    <reportingOwner>
        <reportingOwnerId>
            <rptOwnerCik>0001214156</rptOwnerCik>
            <rptOwnerName>COOK TIMOTHY D</rptOwnerName>
        </reportingOwnerId>
        <reportingOwnerAddress>
            <rptOwnerStreet1>ONE APPLE PARK WAY</rptOwnerStreet1>
            <rptOwnerStreet2></rptOwnerStreet2>
            <rptOwnerCity>CUPERTINO</rptOwnerCity>
        </reportingOwnerAddress>
        <reportingOwnerRelationship>
            <isDirector>1</isDirector>
            <isOfficer>true</isOfficer>
            <isTenPercentOwner>0</isTenPercentOwner>
            <officerTitle>Chief Executive Officer</officerTitle>
        </reportingOwnerRelationship>
    </reportingOwner>
    <nonDerivativeTable>
        <nonDerivativeTransaction>
            <securityTitle>
                <value>Common Stock</value>
            </securityTitle>
            <transactionDate>
                <value>2024-01-02T00:00:00</value>
            </transactionDate>
            <transactionCoding>
                <transactionFormType>4</transactionFormType>
                <transactionCode>S</transactionCode>
                <equitySwapInvolved>0</equitySwapInvolved>
            </transactionCoding>
            <transactionAmounts>
                <transactionShares>
                    <value>1500</value>
                </transactionShares>
                <transactionPricePerShare>
                    <value>185.25</value>
                    <footnoteId id="F1"/>
                </transactionPricePerShare>
                <transactionAcquiredDisposedCode>
                    <value>D</value>
                </transactionAcquiredDisposedCode>
            </transactionAmounts>
            <postTransactionAmounts>
                <sharesOwnedFollowingTransaction>
                    <value>3280180</value>
                </sharesOwnedFollowingTransaction>
            </postTransactionAmounts>
        </nonDerivativeTransaction>
    </nonDerivativeTable>
    <footnotes>
        <footnote id="F1">Weighted average sale price.</footnote>
    </footnotes>
    <remarks></remarks>
    <ownerSignature>
        <signatureName>/s/ Jane Doe, Attorney-in-Fact</signatureName>
        <signatureDate>2024-01-03</signatureDate>
    </ownerSignature>
</ownershipDocument>
"""


def make_submission(form_type: str = "4", xml: str = FORM4_XML) -> str:
    """Return a full submission text with one XML and one exhibit document."""
    return (
        "<SEC-DOCUMENT>0001214156-24-000001.txt : 20240102\n"
        "<SEC-HEADER>header</SEC-HEADER>\n"
        "<DOCUMENT>\n"
        f"<TYPE>{form_type}\n"
        "<SEQUENCE>1\n"
        "<FILENAME>wf-form4_1.xml\n"
        "<DESCRIPTION>FORM 4 SUBMISSION\n"
        "<TEXT>\n"
        f"<XML>\n{xml}</XML>\n"
        "</TEXT>\n"
        "</DOCUMENT>\n"
        "<DOCUMENT>\n"
        "<TYPE>EX-24\n"
        "<SEQUENCE>2\n"
        "<FILENAME>poa.txt\n"
        "<TEXT>\n"
        "Power of attorney\n"
        "</TEXT>\n"
        "</DOCUMENT>\n"
        "</SEC-DOCUMENT>\n"
    )


def make_idx(lines: list[str]) -> str:
    header = (
        "Description:           Daily Index of EDGAR Dissemination Feed by Company Name\n"
        "Last Data Received:    Jan 02, 2024\n"
        "\n"
        "CIK|Company Name|Form Type|Date Filed|File Name\n"
        "--------------------------------------------------------------------------------\n"
    )
    return header + "\n".join(lines) + "\n"


def listing(*items: tuple[str, str]) -> dict[str, Any]:
    """Directory listing JSON for (name, type) pairs."""
    return {
        "directory": {
            "name": "listing",
            "item": [
                {"name": name, "type": kind, "href": f"{name}/" if kind == "dir" else name}
                for name, kind in items
            ],
        }
    }


class FakeFetcher:
    """Serve archive paths from a dict; unknown paths raise a 404."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []

    def _get(self, path: str) -> Any:
        self.calls.append(path)
        if path not in self.responses:
            raise RemoteFetchError(path, 404, "Not Found")
        value = self.responses[path]
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_text(self, path: str) -> str:
        value = self._get(path)
        return value if isinstance(value, str) else json.dumps(value)

    def fetch_json(self, path: str) -> Any:
        return self._get(path)


class InMemoryStore:
    """Dict-backed stand-in for `MongoStore`."""

    def __init__(self) -> None:
        self.filings: dict[str, OwnershipFiling] = {}
        self.subscriptions: list[NotificationSubscription] = []
        self.users: dict[str, User] = {}
        self.writes = 0
        # number of upcoming writes to reject, and whether only writes with form data fail
        self.fail_writes = 0
        self.fail_only_with_form = False

    def _maybe_fail(self, filing: OwnershipFiling) -> None:
        if self.fail_only_with_form and filing.form_data is None:
            return
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise PersistenceError(f"write of {filing.filing_id} rejected")

    # filings
    def latest_date_filed(self) -> date | None:
        return max((f.date_filed for f in self.filings.values()), default=None)

    def get_filing_date(self, filing_id: str) -> date | None:
        filing = self.filings.get(filing_id)
        return filing.date_filed if filing else None

    def insert_filing(self, filing: OwnershipFiling) -> None:
        self._maybe_fail(filing)
        if filing.filing_id in self.filings:
            raise PersistenceError(f"duplicate filing {filing.filing_id}")
        self.filings[filing.filing_id] = filing
        self.writes += 1

    def replace_filing(self, filing: OwnershipFiling) -> None:
        self._maybe_fail(filing)
        stored = self.filings.get(filing.filing_id)
        if stored is None:
            raise PersistenceError(f"filing {filing.filing_id} not stored")
        self.filings[filing.filing_id] = filing.model_copy(update={"ingested_at": stored.ingested_at})
        self.writes += 1

    def incomplete_filings(self) -> list[OwnershipFiling]:
        return [f for f in self.filings.values() if f.form_data is None]

    def set_form_data(self, filing_id: str, form_data: dict[str, Any]) -> None:
        self.filings[filing_id] = self.filings[filing_id].model_copy(update={"form_data": form_data})

    # subscriptions & users
    def subscriptions_by_user(self) -> dict[str, list[NotificationSubscription]]:
        grouped: dict[str, list[NotificationSubscription]] = {}
        for sub in self.subscriptions:
            grouped.setdefault(sub.subscriber, []).append(sub)
        return grouped

    def find_matching_filings(
        self, subscription: NotificationSubscription, until: datetime
    ) -> list[OwnershipFiling]:
        start = subscription.window_start()
        out = []
        for f in self.filings.values():
            if not (start < f.ingested_at <= until):
                continue
            if subscription.form_types and f.form_type not in subscription.form_types:
                continue
            data = f.form_data or {}
            if subscription.issuer_ciks and (data.get("issuer") or {}).get("issuerCik") not in subscription.issuer_ciks:
                continue
            if subscription.owner_ciks:
                owners = {
                    (o.get("reportingOwnerId") or {}).get("rptOwnerCik") for o in data.get("reportingOwner") or []
                }
                if not owners & set(subscription.owner_ciks):
                    continue
            out.append(f)
        return sorted(out, key=lambda f: f.ingested_at)

    def update_last_triggered(self, subscription_id: str, triggered_at: datetime) -> None:
        for i, sub in enumerate(self.subscriptions):
            if sub.id == subscription_id:
                current = sub.last_triggered
                if current is None or triggered_at > current:
                    self.subscriptions[i] = sub.model_copy(update={"last_triggered": triggered_at})

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def subscription(self, subscription_id: str) -> NotificationSubscription:
        return next(s for s in self.subscriptions if s.id == subscription_id)


class FakeMailer:
    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.error = error

    def send(self, to: str, subject: str, html: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((to, subject, html))


