"""Relay for ad-hoc report emails."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..mail import Mailer, MailMessage
from ..notifications.templates import report_email
from ..validation import SchemaRegistry, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("recipient", "category", "flag", "bodyText")


class ReportRequestError(ValueError):
    def __init__(self, message: str, missing_fields: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.missing_fields = missing_fields


@dataclass
class ReportEmailService:
    mailer: Mailer
    sender: str
    schemas: SchemaRegistry

    def build_message(self, payload: Any) -> MailMessage:
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ReportRequestError("Request body must be a JSON object.", REQUIRED_FIELDS)
        missing = tuple(name for name in REQUIRED_FIELDS if not payload.get(name))
        if missing:
            raise ReportRequestError(f"Missing required fields: {', '.join(missing)}.", missing)
        try:
            self.schemas.validate("report_email", payload)
        except ValidationError as exc:
            raise ReportRequestError(f"Invalid report request: {exc.message}") from exc
        return report_email(
            self.sender,
            payload["recipient"],
            payload["category"],
            payload["flag"],
            payload["bodyText"],
        )

    async def send(self, payload: Any) -> MailMessage:
        """Validate and send; ReportRequestError for bad input, transport errors propagate."""
        message = self.build_message(payload)
        await self.mailer.send(message)
        logger.info('Email sent to %s with subject "%s"', message.to, message.subject)
        return message
