"""SMTP mailer for digest notifications."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from insider_monitor.config import MailSettings

log = logging.getLogger(__name__)


class Mailer:
    """Send HTML emails through the configured relay."""

    def __init__(self, settings: MailSettings, timeout: float = 30.0) -> None:
        self.settings = settings
        self.timeout = timeout

    def compose(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.settings.from_name, self.settings.from_address))
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message contains HTML content. Please use an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, html: str) -> None:
        """Send one message.

        Raises:
            smtplib.SMTPException | OSError: when the relay rejects the
                message or cannot be reached.
        """
        s = self.settings
        msg = self.compose(to, subject, html)
        smtp_cls = smtplib.SMTP_SSL if s.use_ssl else smtplib.SMTP
        with smtp_cls(s.host, s.port, timeout=self.timeout) as server:
            if s.username and s.password:
                server.login(s.username, s.password)
            server.send_message(msg)
        log.info("Sent '%s' to %s", subject, to)
