"""Unit tests for the bid finalization sweep."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from market_notify.bids import (
    BidFinalizationSweep,
    OutcomeStatus,
    SweepHistory,
    SweepSelectionError,
    run_on_interval,
)
from market_notify.mail import LocalMailer, MailError, MailMessage
from market_notify.notifications import SENTINEL_EMAIL
from market_notify.storage import InMemoryStorage

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
YESTERDAY = "2026-10-18T12:00:00.000Z"
TOMORROW = "2026-10-20T12:00:00.000Z"


def auction(listing_id: str, owner_id: str, end_time: Any, bidder: str | None = None, finalized: bool = False) -> dict[str, Any]:
    doc = {
        "listingId": listing_id,
        "ownerId": owner_id,
        "bidEndTime": end_time,
        "bidFinalized": finalized,
    }
    if bidder is not None:
        doc["currentHighestBidderId"] = bidder
    return doc


@pytest.fixture
def storage():
    return InMemoryStorage(
        {
            "bids": {"A001": auction("L1", "S1", YESTERDAY, bidder="B1")},
            "listings": {"L1": {"title": "Vintage lamp", "ownerId": "S1"}},
            "users": {
                "S1": {"email": "s@x.com", "name": "Sam"},
                "B1": {"email": "b@x.com", "name": "Bo"},
            },
        }
    )


@pytest.fixture
def mailer():
    return LocalMailer()


def make_sweep(storage, mailer, **overrides) -> BidFinalizationSweep:
    options = {
        "sender": "noreply@market.test",
        "retry_delay_seconds": 0,
        "clock": lambda: NOW,
    }
    options.update(overrides)
    return BidFinalizationSweep(storage=storage, mailer=mailer, **options)


class FailingMailer(LocalMailer):
    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self._failing = failing

    async def send(self, message: MailMessage) -> None:
        if message.to in self._failing:
            raise MailError(f"mailbox {message.to} unavailable")
        await super().send(message)


class FlakyUpdateStorage(InMemoryStorage):
    def __init__(self, seed, failing_ids: set[str]) -> None:
        super().__init__(seed)
        self.failing_ids = failing_ids

    async def update(self, collection, doc_id, updates, *, precondition=None):
        if doc_id in self.failing_ids:
            raise ConnectionError("store unavailable")
        return await super().update(collection, doc_id, updates, precondition=precondition)


class CommitThenErrorStorage(InMemoryStorage):
    """Applies the first update and then reports it as failed."""

    def __init__(self, seed) -> None:
        super().__init__(seed)
        self.update_calls = 0

    async def update(self, collection, doc_id, updates, *, precondition=None):
        self.update_calls += 1
        result = await super().update(collection, doc_id, updates, precondition=precondition)
        if self.update_calls == 1:
            raise ConnectionError("deadline exceeded")
        return result


class TestFinalizationScenario:
    @pytest.mark.asyncio
    async def test_expired_auction_with_winner(self, storage, mailer):
        summary = await make_sweep(storage, mailer).run()

        assert summary.completed
        assert summary.selected == 1
        outcome = summary.outcome_for("A001")
        assert outcome.status == OutcomeStatus.FINALIZED
        assert outcome.listing_deleted is True

        record = await storage.get("bids", "A001")
        assert record["bidFinalized"] is True
        assert await storage.get("listings", "L1") is None

        assert len(mailer.outbox) == 2
        [seller_mail] = mailer.sent_to("s@x.com")
        [bidder_mail] = mailer.sent_to("b@x.com")
        assert "Bo" in seller_mail.body and "b@x.com" in seller_mail.body
        assert "Sam" in bidder_mail.body and "s@x.com" in bidder_mail.body
        assert seller_mail.subject == "Your Listing Bid Has Ended"
        assert bidder_mail.subject == "Congratulations, You Won the Bid!"
        assert seller_mail.sender == "noreply@market.test"

    @pytest.mark.asyncio
    async def test_rerun_selects_nothing(self, storage, mailer):
        sweep = make_sweep(storage, mailer)
        await sweep.run()
        second = await sweep.run()

        assert second.completed
        assert second.selected == 0
        assert len(mailer.outbox) == 2

    @pytest.mark.asyncio
    async def test_current_time_is_not_persisted(self, storage, mailer):
        await make_sweep(storage, mailer).run()

        record = await storage.get("bids", "A001")
        assert set(record) == {
            "listingId",
            "ownerId",
            "bidEndTime",
            "bidFinalized",
            "currentHighestBidderId",
        }


class TestSelection:
    @pytest.mark.asyncio
    async def test_finalized_and_future_auctions_untouched(self, storage, mailer):
        await storage.set("bids", "A002", auction("L2", "S1", YESTERDAY, bidder="B1", finalized=True))
        await storage.set("bids", "A003", auction("L3", "S1", TOMORROW, bidder="B1"))
        await storage.set("listings", "L2", {"title": "Chair", "ownerId": "S1"})
        await storage.set("listings", "L3", {"title": "Desk", "ownerId": "S1"})
        storage.update = AsyncMock(wraps=storage.update)

        summary = await make_sweep(storage, mailer).run()

        updated_ids = [call.args[1] for call in storage.update.call_args_list]
        assert updated_ids == ["A001"]
        assert summary.selected == 1
        assert await storage.get("listings", "L2") is not None
        assert await storage.get("listings", "L3") is not None
        assert (await storage.get("bids", "A003"))["bidFinalized"] is False

    @pytest.mark.asyncio
    async def test_end_times_compared_chronologically(self, storage, mailer):
        # 13:00+02:00 is 11:00Z (expired) although it sorts after "12:00" as text
        await storage.set("bids", "A010", auction("L10", "S1", "2026-10-19T13:00:00+02:00"))
        # 11:30-02:00 is 13:30Z (still open) although it sorts before "12:00" as text
        await storage.set("bids", "A011", auction("L11", "S1", "2026-10-19T11:30:00-02:00"))

        summary = await make_sweep(storage, mailer).run()

        assert summary.outcome_for("A010").status == OutcomeStatus.FINALIZED
        assert summary.outcome_for("A011") is None
        assert (await storage.get("bids", "A011"))["bidFinalized"] is False

    @pytest.mark.asyncio
    async def test_native_datetime_end_time(self, storage, mailer):
        await storage.set("bids", "A020", auction("L20", "S1", NOW - timedelta(minutes=5)))

        summary = await make_sweep(storage, mailer).run()

        assert summary.outcome_for("A020").status == OutcomeStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_pages_through_every_expired_auction(self, mailer):
        seed = {
            "bids": {
                f"A{i:03d}": auction(f"L{i}", "S1", f"2026-10-1{i % 9}T08:00:00Z")
                for i in range(5)
            },
            "listings": {f"L{i}": {"title": f"Item {i}", "ownerId": "S1"} for i in range(5)},
        }
        storage = InMemoryStorage(seed)

        summary = await make_sweep(storage, mailer, batch_size=2).run()

        assert summary.pages == 3
        assert summary.selected == 5
        assert summary.count(OutcomeStatus.FINALIZED) == 5
        for i in range(5):
            assert (await storage.get("bids", f"A{i:03d}"))["bidFinalized"] is True
            assert await storage.get("listings", f"L{i}") is None

    @pytest.mark.asyncio
    async def test_selection_failure_fails_the_run(self, storage, mailer):
        storage.query = AsyncMock(side_effect=RuntimeError("query quota exceeded"))

        with pytest.raises(SweepSelectionError) as excinfo:
            await make_sweep(storage, mailer).run()

        assert "query quota exceeded" in str(excinfo.value)
        assert excinfo.value.summary.completed is False
        assert mailer.outbox == []
        assert (await storage.get("bids", "A001"))["bidFinalized"] is False


class TestPerAuctionHandling:
    @pytest.mark.asyncio
    async def test_no_highest_bidder_sends_nothing(self, mailer):
        storage = InMemoryStorage(
            {
                "bids": {"A005": auction("L5", "S1", YESTERDAY)},
                "listings": {"L5": {"title": "Rug", "ownerId": "S1"}},
                "users": {"S1": {"email": "s@x.com", "name": "Sam"}},
            }
        )

        summary = await make_sweep(storage, mailer).run()

        outcome = summary.outcome_for("A005")
        assert outcome.status == OutcomeStatus.FINALIZED
        assert outcome.deliveries == []
        assert mailer.outbox == []
        assert (await storage.get("bids", "A005"))["bidFinalized"] is True
        assert await storage.get("listings", "L5") is None

    @pytest.mark.asyncio
    async def test_missing_contacts_use_sentinel(self, mailer):
        storage = InMemoryStorage(
            {
                "bids": {"A006": auction("L6", "S6", YESTERDAY, bidder="B6")},
                "listings": {"L6": {"title": "Lamp", "ownerId": "S6"}},
                "users": {"S6": {"name": "Sid"}},
            }
        )

        summary = await make_sweep(storage, mailer).run()

        assert summary.outcome_for("A006").status == OutcomeStatus.FINALIZED
        recipients = [message.to for message in mailer.outbox]
        assert recipients == [SENTINEL_EMAIL, SENTINEL_EMAIL]
        seller_mail, bidder_mail = mailer.outbox
        assert "Hello Sid" in seller_mail.body
        assert "Name: Bidder" in seller_mail.body
        assert "Hello Bidder" in bidder_mail.body

    @pytest.mark.asyncio
    async def test_listing_already_deleted(self, storage, mailer):
        await storage.delete("listings", "L1")

        summary = await make_sweep(storage, mailer).run()

        outcome = summary.outcome_for("A001")
        assert outcome.status == OutcomeStatus.FINALIZED
        assert outcome.listing_deleted is False
        assert len(mailer.outbox) == 2

    @pytest.mark.asyncio
    async def test_mail_failure_is_contained(self, storage):
        mailer = FailingMailer({"s@x.com"})

        summary = await make_sweep(storage, mailer).run()

        assert summary.completed
        outcome = summary.outcome_for("A001")
        assert outcome.status == OutcomeStatus.PARTIAL
        assert [delivery.sent for delivery in outcome.deliveries] == [False, True]
        assert "mailbox s@x.com unavailable" in outcome.deliveries[0].error
        assert summary.emails_failed == 1
        assert (await storage.get("bids", "A001"))["bidFinalized"] is True
        assert await storage.get("listings", "L1") is None
        assert [message.to for message in mailer.outbox] == ["b@x.com"]

    @pytest.mark.asyncio
    async def test_failed_finalize_leaves_auction_eligible(self, mailer):
        seed = {
            "bids": {
                "A001": auction("L1", "S1", YESTERDAY, bidder="B1"),
                "A002": auction("L2", "S1", YESTERDAY, bidder="B1"),
            },
            "listings": {
                "L1": {"title": "Lamp", "ownerId": "S1"},
                "L2": {"title": "Chair", "ownerId": "S1"},
            },
            "users": {
                "S1": {"email": "s@x.com", "name": "Sam"},
                "B1": {"email": "b@x.com", "name": "Bo"},
            },
        }
        storage = FlakyUpdateStorage(seed, failing_ids={"A001"})

        summary = await make_sweep(storage, mailer, mutation_retries=1).run()

        assert summary.completed
        assert summary.outcome_for("A001").status == OutcomeStatus.FAILED
        assert summary.outcome_for("A002").status == OutcomeStatus.FINALIZED
        assert (await storage.get("bids", "A001"))["bidFinalized"] is False
        assert await storage.get("listings", "L1") is not None
        assert len(mailer.outbox) == 2

    @pytest.mark.asyncio
    async def test_finalize_reported_failed_but_applied(self, mailer):
        storage = CommitThenErrorStorage(
            {
                "bids": {"A001": auction("L1", "S1", YESTERDAY, bidder="B1")},
                "listings": {"L1": {"title": "Lamp", "ownerId": "S1"}},
                "users": {
                    "S1": {"email": "s@x.com", "name": "Sam"},
                    "B1": {"email": "b@x.com", "name": "Bo"},
                },
            }
        )

        summary = await make_sweep(storage, mailer).run()

        outcome = summary.outcome_for("A001")
        assert outcome.status == OutcomeStatus.FINALIZED
        assert storage.update_calls == 2
        assert (await storage.get("bids", "A001"))["bidFinalized"] is True
        assert await storage.get("listings", "L1") is None
        assert sorted(message.to for message in mailer.outbox) == ["b@x.com", "s@x.com"]

        storage.failing_ids.clear()
        retry = await make_sweep(storage, mailer).run()
        assert [outcome.auction_id for outcome in retry.outcomes] == ["A001"]
        assert retry.outcome_for("A001").status == OutcomeStatus.FINALIZED

    @pytest.mark.asyncio
    async def test_listing_delete_failure_still_notifies(self, storage, mailer):
        storage.delete = AsyncMock(side_effect=ConnectionError("store unavailable"))

        summary = await make_sweep(storage, mailer, mutation_retries=0).run()

        outcome = summary.outcome_for("A001")
        assert outcome.status == OutcomeStatus.PARTIAL
        assert any("listing delete failed" in reason for reason in outcome.reasons)
        assert (await storage.get("bids", "A001"))["bidFinalized"] is True
        assert len(mailer.outbox) == 2

    @pytest.mark.asyncio
    async def test_overlapping_runs_notify_once(self, storage, mailer):
        first, second = await asyncio.gather(
            make_sweep(storage, mailer).run(),
            make_sweep(storage, mailer).run(),
        )

        statuses = [
            outcome.status
            for summary in (first, second)
            for outcome in summary.outcomes
        ]
        assert statuses.count(OutcomeStatus.FINALIZED) == 1
        assert len(mailer.outbox) == 2
        assert (await storage.get("bids", "A001"))["bidFinalized"] is True


class TestScheduling:
    @pytest.mark.asyncio
    async def test_interval_loop_records_each_run(self, storage, mailer):
        history = SweepHistory(size=5)
        task = asyncio.create_task(run_on_interval(make_sweep(storage, mailer), history, 3600))
        for _ in range(100):
            if history.last() is not None:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert history.last().completed
        assert history.recent()[0].selected == 1

    @pytest.mark.asyncio
    async def test_history_keeps_failed_selection(self, storage, mailer):
        history = SweepHistory()
        storage.query = AsyncMock(side_effect=RuntimeError("unavailable"))

        with pytest.raises(SweepSelectionError):
            await history.run(make_sweep(storage, mailer))

        assert history.last().error == "selection failed: unavailable"
