"""Unit tests for contact resolution, delivery, and retry helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from market_notify.mail import LocalMailer, MailError, MailMessage
from market_notify.notifications import SENTINEL_EMAIL, ContactDirectory, deliver
from market_notify.retry import retry_async
from market_notify.storage import InMemoryStorage, PreconditionFailed


@pytest.fixture
def directory():
    storage = InMemoryStorage({"users": {"U1": {"email": "u@x.com", "name": "Uma"}, "U2": {}}})
    return ContactDirectory(storage)


class TestContactDirectory:
    @pytest.mark.asyncio
    async def test_known_user(self, directory):
        contact = await directory.resolve("U1", default_name="Seller")
        assert (contact.name, contact.email, contact.found) == ("Uma", "u@x.com", True)

    @pytest.mark.asyncio
    async def test_empty_record_gets_defaults(self, directory):
        contact = await directory.resolve("U2", default_name="Seller")
        assert (contact.name, contact.email, contact.found) == ("Seller", SENTINEL_EMAIL, False)

    @pytest.mark.asyncio
    async def test_missing_id_gets_defaults(self, directory):
        contact = await directory.resolve(None, default_name="Bidder")
        assert contact.email == SENTINEL_EMAIL
        assert contact.name == "Bidder"

    @pytest.mark.asyncio
    async def test_store_error_gets_defaults(self):
        storage = InMemoryStorage()
        storage.get = AsyncMock(side_effect=ConnectionError("unavailable"))
        contact = await ContactDirectory(storage).resolve("U1", default_name="Seller")
        assert contact.email == SENTINEL_EMAIL


class TestDeliver:
    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        mailer = LocalMailer()
        mailer.send = AsyncMock(side_effect=MailError("rejected"))
        message = MailMessage("from@x.com", "to@x.com", "Hi", "Body")

        delivery = await deliver(mailer, message, context="test")

        assert delivery.sent is False
        assert delivery.recipient == "to@x.com"
        assert delivery.error == "rejected"


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        func = AsyncMock(side_effect=[ConnectionError("blip"), "ok"])

        result = await retry_async(func, retries=2, initial_delay=0)

        assert result == "ok"
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_immediately_on_listed_errors(self):
        func = AsyncMock(side_effect=PreconditionFailed("taken"))

        with pytest.raises(PreconditionFailed):
            await retry_async(func, retries=3, initial_delay=0, give_up_on=(PreconditionFailed,))
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_reraises_after_last_attempt(self):
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await retry_async(func, retries=1, initial_delay=0)
        assert func.await_count == 2
