"""Resolve user ids to contact details, substituting defaults for missing data."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..storage import DocumentStore

logger = logging.getLogger(__name__)

SENTINEL_EMAIL = "unknown@example.com"


@dataclass(frozen=True)
class Contact:
    user_id: str | None
    name: str
    email: str
    found: bool = True


class ContactDirectory:
    def __init__(self, storage: DocumentStore, collection: str = "users") -> None:
        self._storage = storage
        self._collection = collection

    async def lookup(self, user_id: str | None) -> dict[str, Any] | None:
        if not user_id:
            return None
        return await self._storage.get(self._collection, user_id)

    async def resolve(self, user_id: str | None, *, default_name: str) -> Contact:
        """Never raises: a missing or unreadable user yields the default name and sentinel email."""
        try:
            data = await self.lookup(user_id)
        except Exception as exc:
            logger.warning("Could not load user %s, using defaults: %s", user_id, exc)
            data = None
        if not data:
            return Contact(user_id=user_id, name=default_name, email=SENTINEL_EMAIL, found=False)
        return Contact(
            user_id=user_id,
            name=data.get("name") or default_name,
            email=data.get("email") or SENTINEL_EMAIL,
        )
