"""Per-recipient delivery that never lets a transport failure escape."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from ..mail import Mailer, MailMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    recipient: str
    subject: str
    sent: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def deliver(mailer: Mailer, message: MailMessage, *, context: str) -> Delivery:
    try:
        await mailer.send(message)
    except Exception as exc:
        logger.error("Error sending email to %s (%s): %s", message.to, context, exc)
        return Delivery(message.to, message.subject, sent=False, error=str(exc))
    logger.info("Email sent to %s (%s)", message.to, context)
    return Delivery(message.to, message.subject, sent=True)
