"""Scheduled sweep that finalizes expired auctions and notifies seller and winner."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from ..config import CollectionsConfig, ServerConfig
from ..mail import Mailer
from ..notifications import ContactDirectory, deliver
from ..notifications.templates import auction_seller_notice, auction_winner_notice
from ..retry import retry_async
from ..storage import Document, DocumentNotFound, DocumentStore, PreconditionFailed, where
from ..timestamps import utc_now
from .models import (
    END_TIME_FIELD,
    FINALIZED_FIELD,
    Auction,
    AuctionOutcome,
    OutcomeStatus,
    SweepSummary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SweepSelectionError(RuntimeError):
    """The selection query failed; ``summary`` holds whatever was processed before it."""

    def __init__(self, message: str, summary: SweepSummary) -> None:
        super().__init__(message)
        self.summary = summary


@dataclass
class BidFinalizationSweep:
    """Finalize every auction with ``bidFinalized == false`` and ``bidEndTime <= now``.

    Each selected auction runs through its own pipeline: conditional finalize,
    listing removal, contact lookup, and two notices when there is a winning
    bidder. Pipelines run concurrently and a failure in one never reaches its
    siblings; only a failing selection query fails the run.

    The selection predicate together with the ``bidFinalized == false``
    precondition on the finalize write keeps reruns and overlapping runs from
    notifying twice. When the finalize write itself fails, the auction stays
    eligible and the next run retries it from the start.
    """

    storage: DocumentStore
    mailer: Mailer
    sender: str
    collections: CollectionsConfig = field(default_factory=CollectionsConfig)
    batch_size: int = 200
    max_concurrency: int = 16
    mutation_retries: int = 2
    retry_delay_seconds: float = 0.5
    clock: Callable[[], datetime] = utc_now

    def __post_init__(self) -> None:
        self.contacts = ContactDirectory(self.storage, self.collections.users)

    @classmethod
    def from_config(
        cls, config: ServerConfig, storage: DocumentStore, mailer: Mailer
    ) -> "BidFinalizationSweep":
        return cls(
            storage=storage,
            mailer=mailer,
            sender=config.mail.sender,
            collections=config.collections,
            batch_size=config.sweep.batch_size,
            max_concurrency=config.sweep.max_concurrency,
            mutation_retries=config.sweep.mutation_retries,
            retry_delay_seconds=config.sweep.retry_delay_seconds,
        )

    async def run(self) -> SweepSummary:
        now = self.clock()
        summary = SweepSummary(run_at=now)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        cursor: Document | None = None
        logger.info("Bid finalization started (cutoff=%s)", now.isoformat())
        while True:
            try:
                page = await self._select(now, cursor)
            except Exception as exc:
                summary.error = f"selection failed: {exc}"
                logger.error(
                    "Bid finalization selection failed after %d auctions: %s",
                    summary.selected,
                    exc,
                    exc_info=True,
                )
                raise SweepSelectionError(summary.error, summary) from exc
            summary.pages += 1
            if not page:
                break
            outcomes = await asyncio.gather(
                *(self._process_guarded(doc, now, semaphore) for doc in page)
            )
            summary.outcomes.extend(outcomes)
            if len(page) < self.batch_size:
                break
            cursor = page[-1]
        summary.completed = True
        logger.info(
            "Bid finalization complete: selected=%d finalized=%d partial=%d skipped=%d failed=%d emails_sent=%d",
            summary.selected,
            summary.count(OutcomeStatus.FINALIZED),
            summary.count(OutcomeStatus.PARTIAL),
            summary.count(OutcomeStatus.SKIPPED),
            summary.count(OutcomeStatus.FAILED),
            summary.emails_sent,
        )
        return summary

    async def _select(self, now: datetime, cursor: Document | None) -> list[Document]:
        return await self.storage.query(
            self.collections.auctions,
            [where(FINALIZED_FIELD, "==", False), where(END_TIME_FIELD, "<=", now)],
            order_by=END_TIME_FIELD,
            limit=self.batch_size,
            start_after=cursor,
        )

    async def _process_guarded(
        self, doc: Document, now: datetime, semaphore: asyncio.Semaphore
    ) -> AuctionOutcome:
        async with semaphore:
            try:
                return await self.finalize(doc, now)
            except Exception as exc:
                logger.error("Unexpected error finalizing auction %s: %s", doc.id, exc, exc_info=True)
                return AuctionOutcome(
                    auction_id=doc.id,
                    listing_id=doc.data.get("listingId"),
                    status=OutcomeStatus.FAILED,
                    reasons=[f"unexpected error: {exc}"],
                )

    async def finalize(self, doc: Document, now: datetime) -> AuctionOutcome:
        auction = Auction.from_document(doc)
        outcome = AuctionOutcome(auction_id=auction.auction_id, listing_id=auction.listing_id)

        # the store already filtered; this guards backends that compare timestamps as strings
        if auction.finalized:
            return self._skip(outcome, "already finalized")
        if auction.end_time is None:
            return self._skip(outcome, f"unparseable {END_TIME_FIELD}")
        if not auction.is_expired(now):
            return self._skip(outcome, "not yet expired")

        attempts = 0

        async def _write_finalized() -> dict:
            nonlocal attempts
            attempts += 1
            return await self.storage.update(
                self.collections.auctions,
                auction.auction_id,
                {FINALIZED_FIELD: True},
                precondition={FINALIZED_FIELD: False},
            )

        try:
            await self._mutate(_write_finalized, label=f"finalize auction {auction.auction_id}")
        except PreconditionFailed:
            if attempts == 1:
                return self._skip(outcome, "finalized concurrently")
            # an earlier attempt reported an error but its write landed
            logger.warning(
                "Finalize of auction %s was already applied by a failed attempt; continuing",
                auction.auction_id,
            )
        except DocumentNotFound:
            return self._skip(outcome, "auction no longer exists")
        except Exception as exc:
            logger.error("Could not finalize auction %s: %s", auction.auction_id, exc)
            outcome.status = OutcomeStatus.FAILED
            outcome.reasons.append(f"finalize failed: {exc}")
            return outcome

        await self._remove_listing(auction, outcome)

        seller = await self.contacts.resolve(auction.seller_id, default_name="Seller")
        if not auction.highest_bidder_id:
            logger.info("Auction %s finalized with no bids; no notification", auction.auction_id)
            return outcome
        bidder = await self.contacts.resolve(auction.highest_bidder_id, default_name="Bidder")

        listing_ref = auction.listing_id or auction.auction_id
        messages = [
            auction_seller_notice(self.sender, listing_ref, seller, bidder),
            auction_winner_notice(self.sender, listing_ref, seller, bidder),
        ]
        context = f"auction {auction.auction_id}"
        deliveries = await asyncio.gather(
            *(deliver(self.mailer, message, context=context) for message in messages)
        )
        outcome.deliveries.extend(deliveries)
        for delivery in deliveries:
            if not delivery.sent:
                outcome.degrade(f"email to {delivery.recipient} failed: {delivery.error}")
        return outcome

    async def _remove_listing(self, auction: Auction, outcome: AuctionOutcome) -> None:
        if not auction.listing_id:
            outcome.degrade("auction has no listingId")
            return
        try:
            existed = await self._mutate(
                lambda: self.storage.delete(self.collections.listings, auction.listing_id),
                label=f"delete listing {auction.listing_id}",
            )
        except Exception as exc:
            logger.error(
                "Could not delete listing %s for auction %s: %s",
                auction.listing_id,
                auction.auction_id,
                exc,
            )
            outcome.degrade(f"listing delete failed: {exc}")
            return
        outcome.listing_deleted = existed
        if not existed:
            logger.info("Listing %s was already removed", auction.listing_id)

    async def _mutate(self, func: Callable[[], Awaitable[T]], *, label: str) -> T:
        return await retry_async(
            func,
            retries=self.mutation_retries,
            initial_delay=self.retry_delay_seconds,
            give_up_on=(PreconditionFailed, DocumentNotFound),
            label=label,
        )

    def _skip(self, outcome: AuctionOutcome, reason: str) -> AuctionOutcome:
        logger.info("Skipping auction %s: %s", outcome.auction_id, reason)
        outcome.status = OutcomeStatus.SKIPPED
        outcome.reasons.append(reason)
        return outcome
