"""Timestamp helpers that turn stored ISO-8601 values into comparable datetimes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class TimestampError(ValueError):
    """Raised when a timestamp is missing or malformed."""


def parse_timestamp(value: Any) -> datetime:
    """Return an aware UTC datetime for ``value``.

    Accepts ``datetime`` instances (Firestore returns its own subclass) and
    ISO-8601 strings, including the ``Z`` suffix. Naive values are taken as UTC.
    """
    if value is None or value == "":
        raise TimestampError("timestamp missing")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise TimestampError(f"timestamp {value!r} is not ISO-8601 compatible") from exc
    else:
        raise TimestampError(f"unsupported timestamp type {type(value).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def millis_isoformat(dt: datetime) -> str:
    """Fixed-width UTC form with millisecond precision, e.g. ``2026-10-18T12:00:00.000Z``.

    Strings in this form sort in chronological order.
    """
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
