"""Document store protocol and backend factory."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from ..config import ServerConfig
from .filters import Document, DocumentNotFound, FieldFilter, PreconditionFailed, where
from .in_memory import InMemoryStorage

__all__ = [
    "Document",
    "DocumentNotFound",
    "DocumentStore",
    "FieldFilter",
    "InMemoryStorage",
    "PreconditionFailed",
    "build_storage",
    "where",
]


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict | None: ...

    async def set(self, collection: str, doc_id: str, data: dict) -> dict: ...

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        order_by: str | None = None,
        limit: int | None = None,
        start_after: Document | None = None,
    ) -> list[Document]: ...

    async def update(
        self,
        collection: str,
        doc_id: str,
        updates: dict,
        *,
        precondition: Mapping[str, Any] | None = None,
    ) -> dict:
        """Apply a partial update; raise DocumentNotFound or PreconditionFailed."""
        ...

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False when it was already absent."""
        ...

    async def close(self) -> None: ...


def build_storage(config: ServerConfig) -> DocumentStore:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        from .redis import RedisStorage

        return RedisStorage(**options)
    if backend == "postgres":
        from .postgres import PostgresStorage

        return PostgresStorage(**options)
    if backend == "firestore":
        from .firestore import FirestoreStorage

        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
