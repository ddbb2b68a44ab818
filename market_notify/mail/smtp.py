"""SMTP transport; smtplib runs in worker threads so sends never block the loop."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from .message import MailError, MailMessage

logger = logging.getLogger(__name__)


class SmtpMailer:
    def __init__(
        self,
        *,
        username: str,
        password: str,
        host: str = "smtp.gmail.com",
        port: int = 587,
        starttls: bool = True,
        use_ssl: bool = False,
        timeout_seconds: float = 30.0,
        max_concurrency: int = 4,
    ) -> None:
        if not username or not password:
            raise ValueError("smtp backend requires EMAIL_USER and EMAIL_PASS")
        self._username = username
        self._password = password
        self._host = host
        self._port = int(port)
        self._starttls = starttls
        self._use_ssl = use_ssl
        self._timeout = float(timeout_seconds)
        self._semaphore = asyncio.Semaphore(max(int(max_concurrency), 1))

    def _build(self, message: MailMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = message.sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)
        return email

    def _send_sync(self, email: EmailMessage) -> None:
        if self._use_ssl:
            server = smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        with server:
            if self._starttls and not self._use_ssl:
                server.starttls()
            server.login(self._username, self._password)
            server.send_message(email)

    async def send(self, message: MailMessage) -> None:
        email = self._build(message)
        async with self._semaphore:
            try:
                await asyncio.to_thread(self._send_sync, email)
            except (smtplib.SMTPException, OSError) as exc:
                raise MailError(f"smtp send to {message.to} failed: {exc}") from exc
        logger.info("Email sent to %s with subject %r", message.to, message.subject)

    async def close(self) -> None:
        return None
