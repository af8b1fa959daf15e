"""
Outbound email.

SMTPMailer talks to a real relay; LogMailer is used when no SMTP host is
configured (local development) and only records what would have been sent.
"""

import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from starlette.concurrency import run_in_threadpool

from staybook.core.config import Settings
from staybook.core.logging import get_logger

logger = get_logger(__name__)


class Mailer(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> None:
        ...


class SMTPMailer(Mailer):
    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS
        self.sender = settings.MAIL_FROM

    def _build(self, to: str, subject: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send(self, to: str, subject: str, html: str) -> None:
        await run_in_threadpool(self._send_sync, self._build(to, subject, html))
        logger.info("email_sent", to=to, subject=subject)


class LogMailer(Mailer):
    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("email_suppressed", to=to, subject=subject)
