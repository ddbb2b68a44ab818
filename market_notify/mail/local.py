"""Local mail transport that logs messages and keeps them in an outbox."""

from __future__ import annotations

import asyncio
import logging

from .message import MailMessage

logger = logging.getLogger(__name__)


class LocalMailer:
    def __init__(self) -> None:
        self.outbox: list[MailMessage] = []
        self._lock = asyncio.Lock()

    async def send(self, message: MailMessage) -> None:
        async with self._lock:
            self.outbox.append(message)
        logger.info("[local-mail] to=%s subject=%r delivered", message.to, message.subject)

    def sent_to(self, address: str) -> list[MailMessage]:
        return [message for message in self.outbox if message.to == address]

    async def close(self) -> None:
        return None
