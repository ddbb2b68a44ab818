"""In-memory document store, used for local runs and tests."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any, Iterable, Mapping

from .filters import (
    Document,
    DocumentNotFound,
    FieldFilter,
    PreconditionFailed,
    apply_query,
    matches_precondition,
)


class InMemoryStorage:
    def __init__(self, seed: Mapping[str, Mapping[str, dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        for collection, docs in (seed or {}).items():
            self._collections[collection] = {doc_id: deepcopy(data) for doc_id, data in docs.items()}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._lock:
            data = self._collection(collection).get(doc_id)
            return deepcopy(data) if data is not None else None

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._collection(collection)[doc_id] = deepcopy(data)
            return deepcopy(data)

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        order_by: str | None = None,
        limit: int | None = None,
        start_after: Document | None = None,
    ) -> list[Document]:
        async with self._lock:
            docs = [
                Document(doc_id, deepcopy(data))
                for doc_id, data in self._collection(collection).items()
            ]
        return apply_query(docs, filters, order_by=order_by, limit=limit, start_after=start_after)

    async def update(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        *,
        precondition: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            if not matches_precondition(docs[doc_id], precondition):
                raise PreconditionFailed(f"{collection}/{doc_id} does not match {dict(precondition or {})}")
            docs[doc_id].update(deepcopy(updates))
            return deepcopy(docs[doc_id])

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    async def close(self) -> None:
        return None
