"""Query primitives shared by every document store backend."""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from ..timestamps import TimestampError, parse_timestamp

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_MISSING = object()


class DocumentNotFound(KeyError):
    """Raised when an update targets a document that does not exist."""


class PreconditionFailed(RuntimeError):
    """Raised when a conditional update finds the document in an unexpected state."""


@dataclass
class Document:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"unsupported filter operator {self.op}")

    def matches(self, data: Mapping[str, Any]) -> bool:
        current = data.get(self.field, _MISSING)
        if current is _MISSING:
            return False
        expected = self.value
        if isinstance(current, datetime) or isinstance(expected, datetime):
            try:
                current = parse_timestamp(current)
                expected = parse_timestamp(expected)
            except TimestampError:
                return False
        try:
            return bool(_OPERATORS[self.op](current, expected))
        except TypeError:
            return False


def where(field_name: str, op: str, value: Any) -> FieldFilter:
    return FieldFilter(field_name, op, value)


def matches_all(data: Mapping[str, Any], filters: Iterable[FieldFilter]) -> bool:
    return all(item.matches(data) for item in filters)


def matches_precondition(data: Mapping[str, Any], precondition: Mapping[str, Any] | None) -> bool:
    if not precondition:
        return True
    return all(data.get(key) == expected for key, expected in precondition.items())


def sort_value(value: Any) -> tuple[int, Any]:
    """Total ordering across the value types documents carry; timestamps sort chronologically."""
    if value is None:
        return (0, 0)
    if isinstance(value, (bool, int, float)):
        return (1, value)
    if isinstance(value, (datetime, str)):
        try:
            return (2, parse_timestamp(value))
        except TimestampError:
            return (3, str(value))
    return (4, repr(value))


def document_key(doc: Document, order_by: str | None) -> tuple[Any, ...]:
    if order_by is None:
        return (doc.id,)
    return (sort_value(doc.data.get(order_by)), doc.id)


def apply_query(
    docs: Iterable[Document],
    filters: Iterable[FieldFilter],
    *,
    order_by: str | None = None,
    limit: int | None = None,
    start_after: Document | None = None,
) -> list[Document]:
    """Filter, order, and page documents in process.

    Backends without native range queries run their candidate set through
    this so that every store orders by ``(order_by, id)`` and pages with the
    same cursor rules.
    """
    filters = list(filters)
    selected = [doc for doc in docs if matches_all(doc.data, filters)]
    selected.sort(key=lambda doc: document_key(doc, order_by))
    if start_after is not None:
        cursor = document_key(start_after, order_by)
        selected = [doc for doc in selected if document_key(doc, order_by) > cursor]
    if limit is not None:
        selected = selected[:limit]
    return selected
