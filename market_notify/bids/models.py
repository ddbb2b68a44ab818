"""Auction records and the value types a sweep run reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..notifications import Delivery
from ..storage import Document
from ..timestamps import TimestampError, isoformat, parse_timestamp

FINALIZED_FIELD = "bidFinalized"
END_TIME_FIELD = "bidEndTime"
LISTING_FIELD = "listingId"
OWNER_FIELD = "ownerId"
HIGHEST_BIDDER_FIELD = "currentHighestBidderId"


@dataclass(frozen=True)
class Auction:
    auction_id: str
    listing_id: str | None
    seller_id: str | None
    finalized: bool
    end_time: datetime | None
    highest_bidder_id: str | None

    @classmethod
    def from_document(cls, doc: Document) -> "Auction":
        data = doc.data
        try:
            end_time = parse_timestamp(data.get(END_TIME_FIELD))
        except TimestampError:
            end_time = None
        return cls(
            auction_id=doc.id,
            listing_id=data.get(LISTING_FIELD) or None,
            seller_id=data.get(OWNER_FIELD) or None,
            finalized=bool(data.get(FINALIZED_FIELD, False)),
            end_time=end_time,
            highest_bidder_id=data.get(HIGHEST_BIDDER_FIELD) or None,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.end_time is not None and self.end_time <= now


class OutcomeStatus(str, Enum):
    FINALIZED = "finalized"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class AuctionOutcome:
    auction_id: str
    listing_id: str | None = None
    status: OutcomeStatus = OutcomeStatus.FINALIZED
    reasons: list[str] = field(default_factory=list)
    listing_deleted: bool | None = None
    deliveries: list[Delivery] = field(default_factory=list)

    def degrade(self, reason: str) -> None:
        """Record a non-fatal problem on an auction that was still finalized."""
        self.reasons.append(reason)
        if self.status == OutcomeStatus.FINALIZED:
            self.status = OutcomeStatus.PARTIAL

    @property
    def notified(self) -> int:
        return sum(1 for delivery in self.deliveries if delivery.sent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "auction_id": self.auction_id,
            "listing_id": self.listing_id,
            "status": self.status.value,
            "reasons": list(self.reasons),
            "listing_deleted": self.listing_deleted,
            "deliveries": [delivery.to_dict() for delivery in self.deliveries],
        }


@dataclass
class SweepSummary:
    run_at: datetime
    outcomes: list[AuctionOutcome] = field(default_factory=list)
    pages: int = 0
    completed: bool = False
    error: str | None = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def outcome_for(self, auction_id: str) -> AuctionOutcome | None:
        return next((item for item in self.outcomes if item.auction_id == auction_id), None)

    @property
    def selected(self) -> int:
        return len(self.outcomes)

    @property
    def emails_sent(self) -> int:
        return sum(outcome.notified for outcome in self.outcomes)

    @property
    def emails_failed(self) -> int:
        return sum(
            1 for outcome in self.outcomes for delivery in outcome.deliveries if not delivery.sent
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_at": isoformat(self.run_at),
            "completed": self.completed,
            "error": self.error,
            "pages": self.pages,
            "selected": self.selected,
            "counts": {status.value: self.count(status) for status in OutcomeStatus},
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
