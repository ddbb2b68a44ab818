"""Postgres document store leveraging asyncpg and a JSONB documents table."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import asyncpg
import orjson

from .filters import (
    Document,
    DocumentNotFound,
    FieldFilter,
    PreconditionFailed,
    apply_query,
    matches_precondition,
)


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, table: str = "documents", **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        if not table.isidentifier():
            raise ValueError(f"invalid table name {table}")
        self._dsn = dsn
        self._table = table
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None

    def _encode(self, payload: Mapping[str, Any]) -> str:
        return orjson.dumps(payload).decode()

    def _decode(self, value: Any) -> dict[str, Any]:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            return orjson.loads(value)
        return value

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self._table} (
                        collection TEXT NOT NULL,
                        doc_id TEXT NOT NULL,
                        data JSONB NOT NULL,
                        updated_at TIMESTAMPTZ DEFAULT NOW(),
                        PRIMARY KEY (collection, doc_id)
                    );
                    """
                )
        return self._pool

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT data FROM {self._table} WHERE collection=$1 AND doc_id=$2",
                collection,
                doc_id,
            )
        if not row:
            return None
        return self._decode(row["data"])

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                f"""INSERT INTO {self._table}(collection, doc_id, data) VALUES($1, $2, $3::jsonb)
                    ON CONFLICT (collection, doc_id)
                    DO UPDATE SET data=EXCLUDED.data, updated_at=NOW()""",
                collection,
                doc_id,
                self._encode(data),
            )
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
        filters = list(filters)
        # equality on plain JSON values narrows the scan through the JSONB containment operator
        containment = {
            item.field: item.value
            for item in filters
            if item.op == "==" and isinstance(item.value, (str, int, float, bool))
        }
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT doc_id, data FROM {self._table} WHERE collection=$1 AND data @> $2::jsonb",
                collection,
                self._encode(containment),
            )
        docs = [Document(row["doc_id"], self._decode(row["data"])) for row in rows]
        return apply_query(docs, filters, order_by=order_by, limit=limit, start_after=start_after)

    async def update(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        *,
        precondition: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT data FROM {self._table} WHERE collection=$1 AND doc_id=$2 FOR UPDATE",
                    collection,
                    doc_id,
                )
                if not row:
                    raise DocumentNotFound(f"{collection}/{doc_id}")
                record = self._decode(row["data"])
                if not matches_precondition(record, precondition):
                    raise PreconditionFailed(
                        f"{collection}/{doc_id} does not match {dict(precondition or {})}"
                    )
                record.update(updates)
                await conn.execute(
                    f"""UPDATE {self._table} SET data=$3::jsonb, updated_at=NOW()
                       WHERE collection=$1 AND doc_id=$2""",
                    collection,
                    doc_id,
                    self._encode(record),
                )
        return record

    async def delete(self, collection: str, doc_id: str) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"DELETE FROM {self._table} WHERE collection=$1 AND doc_id=$2 RETURNING doc_id",
                collection,
                doc_id,
            )
        return row is not None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
