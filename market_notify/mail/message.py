"""Outbound mail value types."""

from __future__ import annotations

from dataclasses import dataclass


class MailError(RuntimeError):
    """Raised when a transport fails to hand a message off."""


@dataclass(frozen=True)
class MailMessage:
    sender: str
    to: str
    subject: str
    body: str
