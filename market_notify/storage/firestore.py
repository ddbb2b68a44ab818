"""Firestore document store leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter
from google.cloud.firestore_v1.field_path import FieldPath
from google.oauth2 import service_account

from ..timestamps import millis_isoformat
from .filters import (
    Document,
    DocumentNotFound,
    FieldFilter,
    PreconditionFailed,
    matches_precondition,
)

logger = logging.getLogger(__name__)


class FirestoreStorage:
    """Store backed by Firestore.

    Range filters are pushed down to Firestore, and the server never matches a
    timestamp against a string. Collections holding native timestamps use the
    default. Collections whose timestamps were written as JavaScript ISO
    strings (``2026-10-18T12:00:00.000Z``) set ``timestamp_strings: true`` so
    datetime filter values are sent in that form; those strings sort
    chronologically as long as every writer uses the same UTC form.
    """

    def __init__(
        self,
        *,
        project_id: str,
        database: str | None = None,
        credentials_path: str | None = None,
        timestamp_strings: bool = False,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        self._timestamp_strings = bool(timestamp_strings)
        if not self._timestamp_strings:
            logger.info(
                "Firestore range filters on timestamps match native timestamp fields only; "
                "set storage.options.timestamp_strings for ISO string data"
            )
        client_kwargs: dict[str, Any] = {"project": project_id}
        if database:
            client_kwargs["database"] = database
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)

    def _collection(self, name: str):
        return self._client.collection(name)

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        snapshot = await self._run(self._collection(collection).document(doc_id).get)
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        await self._run(self._collection(collection).document(doc_id).set, data)
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
        ref = self._collection(collection)
        query = ref
        for item in filters:
            query = query.where(
                filter=FirestoreFieldFilter(item.field, item.op, self._filter_value(item.value))
            )
        if order_by is not None:
            query = query.order_by(order_by)
        query = query.order_by(FieldPath.document_id())
        if start_after is not None:
            query = query.start_after(await self._cursor(ref, start_after, order_by))
        if limit is not None:
            query = query.limit(limit)
        snapshots = await self._run(lambda: list(query.stream()))
        return [Document(snapshot.id, snapshot.to_dict() or {}) for snapshot in snapshots]

    def _filter_value(self, value: Any) -> Any:
        if self._timestamp_strings and isinstance(value, datetime):
            return millis_isoformat(value)
        return value

    async def _cursor(self, ref, start_after: Document, order_by: str | None):
        doc_ref = ref.document(start_after.id)
        snapshot = await self._run(doc_ref.get)
        if snapshot.exists:
            return snapshot
        cursor: dict[str, Any] = {"__name__": doc_ref}
        if order_by is not None:
            cursor[order_by] = start_after.data.get(order_by)
        return cursor

    async def update(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        *,
        precondition: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        doc_ref = self._collection(collection).document(doc_id)
        snapshot = await self._run(doc_ref.get)
        if not snapshot.exists:
            raise DocumentNotFound(f"{collection}/{doc_id}")
        current = snapshot.to_dict() or {}
        if not matches_precondition(current, precondition):
            raise PreconditionFailed(f"{collection}/{doc_id} does not match {dict(precondition or {})}")
        # last_update_time makes the write fail if another writer got in between
        option = self._client.write_option(last_update_time=snapshot.update_time)
        try:
            await self._run(doc_ref.update, updates, option=option)
        except gcp_exceptions.FailedPrecondition as exc:
            raise PreconditionFailed(f"{collection}/{doc_id} changed concurrently") from exc
        except gcp_exceptions.NotFound as exc:
            raise DocumentNotFound(f"{collection}/{doc_id}") from exc
        current.update(updates)
        return current

    async def delete(self, collection: str, doc_id: str) -> bool:
        doc_ref = self._collection(collection).document(doc_id)
        snapshot = await self._run(doc_ref.get)
        if not snapshot.exists:
            return False
        await self._run(doc_ref.delete)
        return True

    async def close(self) -> None:
        await self._run(self._client.close)
