"""Redis document store using redis-py asyncio client."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import orjson
from redis import asyncio as aioredis
from redis.exceptions import WatchError

from .filters import (
    Document,
    DocumentNotFound,
    FieldFilter,
    PreconditionFailed,
    apply_query,
    matches_precondition,
)


class RedisStorage:
    def __init__(
        self,
        *,
        url: str | None = None,
        prefix: str = "market:docs",
        client: aioredis.Redis | None = None,
    ) -> None:
        if client is None and not url:
            raise ValueError("redis url missing")
        self._redis = client or aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")

    def _collection_prefix(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:"

    def _key(self, collection: str, doc_id: str) -> str:
        return f"{self._collection_prefix(collection)}{doc_id}"

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        raw = await self._redis.get(self._key(collection, doc_id))
        if raw is None:
            return None
        return orjson.loads(raw)

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        await self._redis.set(self._key(collection, doc_id), orjson.dumps(data))
        return data

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        order_by: str | None = None,
        limit: int | None = None,
        start_after: Document | None = None,
    ) -> list[Document]:
        prefix = self._collection_prefix(collection)
        keys: list[bytes] = []
        cursor = 0
        while True:
            cursor, batch = await self._redis.scan(cursor=cursor, match=f"{prefix}*", count=100)
            keys.extend(batch)
            if cursor == 0:
                break
        if not keys:
            return []
        values = await self._redis.mget(keys)
        docs = []
        for key, value in zip(keys, values):
            if not value:
                continue
            name = key.decode() if isinstance(key, bytes) else key
            docs.append(Document(name[len(prefix):], orjson.loads(value)))
        return apply_query(docs, filters, order_by=order_by, limit=limit, start_after=start_after)

    async def update(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        *,
        precondition: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        key = self._key(collection, doc_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise DocumentNotFound(f"{collection}/{doc_id}")
                record = orjson.loads(raw)
                if not matches_precondition(record, precondition):
                    raise PreconditionFailed(
                        f"{collection}/{doc_id} does not match {dict(precondition or {})}"
                    )
                record.update(updates)
                pipe.multi()
                pipe.set(key, orjson.dumps(record))
                await pipe.execute()
            except WatchError as exc:
                raise PreconditionFailed(f"{collection}/{doc_id} changed concurrently") from exc
        return record

    async def delete(self, collection: str, doc_id: str) -> bool:
        removed = await self._redis.delete(self._key(collection, doc_id))
        return bool(removed)

    async def close(self) -> None:
        await self._redis.aclose()
