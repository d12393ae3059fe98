"""
auth/mailer.py -- Outbound mail for password-reset links.

SMTPMailer sends through smtplib when SMTP_HOST is configured. LogMailer is
the development stand-in: it writes the message to the log so a developer can
click the reset link without a mail server.

Mailers raise on failure. Deciding that a failed send must not fail the
caller is AuthService's job, not the transport's.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import get_settings

logger = logging.getLogger("threadline.auth.mailer")

RESET_SUBJECT = "Reset your password"


class Mailer(Protocol):
    def send(self, to_address: str, html_body: str) -> None: ...


class SMTPMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def send(self, to_address: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = RESET_SUBJECT
        msg["From"] = self.sender
        msg["To"] = to_address
        msg.set_content("Open this message in an HTML-capable mail client to reset your password.")
        msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)
        logger.info("Reset mail handed to %s:%d", self.host, self.port)


class LogMailer:
    """Development mailer: logs instead of sending."""

    def send(self, to_address: str, html_body: str) -> None:
        logger.info("Mail to %s (not sent, SMTP disabled): %s", to_address, html_body)


def build_mailer() -> Mailer:
    settings = get_settings()
    if settings.smtp_host:
        return SMTPMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.mail_from,
        )
    logger.warning("SMTP_HOST not set -- reset links will be written to the log")
    return LogMailer()
