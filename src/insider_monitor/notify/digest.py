"""Subscription matching and digest composition.

For every user, each subscription is evaluated on its own window
``(last_triggered or created_at, now]``. Matching subscriptions become sections
of one HTML digest; `last_triggered` is advanced per subscription only after
the digest was sent.
"""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import pandas as pd

from insider_monitor.exceptions import InsiderMonitorError
from insider_monitor.models import NotificationSubscription, OwnershipFiling, User

log = logging.getLogger(__name__)

SUBJECT_PREFIX = "[SIM]"


class SubscriptionStore(Protocol):
    def subscriptions_by_user(self) -> dict[str, list[NotificationSubscription]]: ...

    def find_matching_filings(
        self, subscription: NotificationSubscription, until: datetime
    ) -> list[OwnershipFiling]: ...

    def update_last_triggered(self, subscription_id: str, triggered_at: datetime) -> None: ...

    def get_user(self, user_id: str) -> User | None: ...


class DigestSender(Protocol):
    def send(self, to: str, subject: str, html: str) -> None: ...


@dataclass(frozen=True)
class DigestSection:
    subscription: NotificationSubscription
    filings: list[OwnershipFiling]

    @property
    def last_ingested_at(self) -> datetime:
        return self.filings[-1].ingested_at


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _issuer(form_data: dict[str, Any] | None) -> str:
    issuer = (form_data or {}).get("issuer") or {}
    name = issuer.get("issuerName") or "n/a"
    ticker = issuer.get("issuerTradingSymbol")
    return f"{name} ({ticker})" if ticker else name


def _owners(form_data: dict[str, Any] | None) -> str:
    names = []
    for owner in (form_data or {}).get("reportingOwner") or []:
        owner_id = (owner or {}).get("reportingOwnerId") or {}
        if owner_id.get("rptOwnerName"):
            names.append(owner_id["rptOwnerName"])
    return ", ".join(names) or "n/a"


def filings_table(filings: list[OwnershipFiling], server_fqdn: str) -> pd.DataFrame:
    """Return one row per filing for a digest section."""
    return pd.DataFrame(
        [
            {
                "Filed": f.date_filed.isoformat(),
                "Form": f.form_type,
                "Issuer": _issuer(f.form_data),
                "Reporting owner(s)": _owners(f.form_data),
                "Link": f"https://{server_fqdn}/filings/{f.filing_id}",
            }
            for f in filings
        ],
        columns=["Filed", "Form", "Issuer", "Reporting owner(s)", "Link"],
    )


def render_digest(user: User, sections: list[DigestSection], server_fqdn: str) -> str:
    """Render the HTML body of a digest email."""
    greeting = html.escape(user.name or user.email)
    parts = [
        "<h2>New insider filings</h2>",
        f"<p>Hello {greeting}, new filings match your subscriptions:</p>",
    ]
    for section in sections:
        title = html.escape(section.subscription.description or "Subscription")
        table = filings_table(section.filings, server_fqdn).to_html(
            index=False, border=0, escape=True, render_links=True
        )
        parts.append(f"<h3>{title} ({len(section.filings)})</h3>")
        parts.append(table)
    return "\n".join(parts)


class SubscriptionMatcher:
    """Match new filings against saved subscriptions and send digests."""

    def __init__(
        self,
        store: SubscriptionStore,
        mailer: DigestSender,
        server_fqdn: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.server_fqdn = server_fqdn
        self._clock = clock

    def collect_sections(
        self,
        subscriptions: list[NotificationSubscription],
        now: datetime,
    ) -> list[DigestSection]:
        sections = []
        for sub in subscriptions:
            filings = self.store.find_matching_filings(sub, now)
            if filings:
                log.debug("Subscription %s matched %d filings", sub.id, len(filings))
                sections.append(DigestSection(subscription=sub, filings=filings))
        return sections

    def notify_user(
        self,
        user_id: str,
        subscriptions: list[NotificationSubscription],
        now: datetime,
    ) -> bool:
        """Send one digest to a user if any subscription matched.

        Returns:
            True when a digest was sent.
        """
        sections = self.collect_sections(subscriptions, now)
        if not sections:
            return False

        user = self.store.get_user(user_id)
        if user is None:
            log.warning("Subscriber %s not found; skipping digest", user_id)
            return False

        total = sum(len(s.filings) for s in sections)
        subject = f"{SUBJECT_PREFIX} {total} new insider filing(s) for your subscriptions"
        try:
            self.mailer.send(user.email, subject, render_digest(user, sections, self.server_fqdn))
        except (smtplib.SMTPException, OSError) as exc:
            log.error("Sending digest to %s failed: %s", user.email, exc)
            return False

        for section in sections:
            sub_id = section.subscription.id
            try:
                self.store.update_last_triggered(sub_id, section.last_ingested_at)
            except InsiderMonitorError as exc:
                log.error("Advancing subscription %s after digest to %s failed: %s", sub_id, user.email, exc)
        return True

    def run(self) -> int:
        """Evaluate all subscriptions and return the number of digests sent.

        A store failure while handling one subscriber is logged and the
        remaining subscribers are still processed.
        """
        now = self._clock()
        sent = 0
        failed = 0
        grouped = self.store.subscriptions_by_user()
        for user_id, subscriptions in grouped.items():
            try:
                if self.notify_user(user_id, subscriptions, now):
                    sent += 1
            except InsiderMonitorError as exc:
                failed += 1
                log.error("Digest for subscriber %s failed: %s", user_id, exc)
        log.info("Sent %d digest(s) to %d subscriber(s), %d failed", sent, len(grouped), failed)
        return sent
