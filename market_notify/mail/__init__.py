"""Mail transport protocol and backend factory."""

from __future__ import annotations

from typing import Protocol

from ..config import MailConfig
from .local import LocalMailer
from .message import MailError, MailMessage

__all__ = ["LocalMailer", "MailError", "MailMessage", "Mailer", "build_mailer"]


class Mailer(Protocol):
    async def send(self, message: MailMessage) -> None:
        """Hand one message to the transport; raise MailError on failure."""
        ...

    async def close(self) -> None: ...


def build_mailer(config: MailConfig) -> Mailer:
    backend = config.backend
    options = dict(config.options)
    if backend == "local":
        return LocalMailer()
    if backend == "smtp":
        from .smtp import SmtpMailer

        return SmtpMailer(username=config.username, password=config.password, **options)
    if backend == "http":
        from .relay import HttpRelayMailer

        return HttpRelayMailer(username=config.username, password=config.password, **options)
    raise ValueError(f"unknown mail backend {backend}")
