"""HTTP mail relay transport for providers that accept JSON over HTTPS."""

from __future__ import annotations

import logging

import httpx

from .message import MailError, MailMessage

logger = logging.getLogger(__name__)


class HttpRelayMailer:
    def __init__(
        self,
        *,
        endpoint: str,
        username: str = "",
        password: str = "",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("http relay backend requires endpoint")
        self._endpoint = endpoint
        auth = (username, password) if username else None
        self._client = client or httpx.AsyncClient(auth=auth, timeout=timeout_seconds)

    async def send(self, message: MailMessage) -> None:
        payload = {
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "text": message.body,
        }
        try:
            response = await self._client.post(self._endpoint, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MailError(f"relay send to {message.to} failed: {exc}") from exc
        logger.info("Email relayed to %s with subject %r", message.to, message.subject)

    async def close(self) -> None:
        await self._client.aclose()
