"""Buyer and seller notifications for new orders."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import CollectionsConfig, ServerConfig
from ..mail import Mailer, MailMessage
from ..notifications import Contact, ContactDirectory, Delivery, deliver
from ..notifications.templates import order_buyer_summary, order_seller_summary
from ..storage import Document, DocumentNotFound, DocumentStore, PreconditionFailed, where
from ..validation import SchemaRegistry, ValidationError

logger = logging.getLogger(__name__)

EMAIL_SENT_FIELD = "emailSent"
DEFAULT_BUYER_NAME = "A buyer"
DEFAULT_SHIPPING_ADDRESS = "Shipping address not provided."


@dataclass
class OrderResult:
    order_id: str
    notified: bool = False
    reason: str | None = None
    deliveries: list[Delivery] = field(default_factory=list)
    marked_sent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "notified": self.notified,
            "reason": self.reason,
            "marked_sent": self.marked_sent,
            "deliveries": [delivery.to_dict() for delivery in self.deliveries],
        }


@dataclass
class _SellerBucket:
    contact: Contact
    items: list[str] = field(default_factory=list)


@dataclass
class OrderNotificationService:
    storage: DocumentStore
    mailer: Mailer
    sender: str
    schemas: SchemaRegistry
    collections: CollectionsConfig = field(default_factory=CollectionsConfig)
    batch_size: int = 200
    max_concurrency: int = 8

    def __post_init__(self) -> None:
        self.contacts = ContactDirectory(self.storage, self.collections.users)

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        storage: DocumentStore,
        mailer: Mailer,
        schemas: SchemaRegistry,
    ) -> "OrderNotificationService":
        return cls(
            storage=storage,
            mailer=mailer,
            sender=config.mail.sender,
            schemas=schemas,
            collections=config.collections,
            batch_size=config.sweep.batch_size,
            max_concurrency=config.sweep.max_concurrency,
        )

    async def handle_created(self, order_id: str, order: dict[str, Any] | None = None) -> OrderResult:
        """Entry point for the order-created trigger; loads the order when the event omits it."""
        if order is None:
            order = await self.storage.get(self.collections.orders, order_id)
            if order is None:
                logger.error("Order %s not found", order_id)
                return OrderResult(order_id, reason="order not found")
        if order.get(EMAIL_SENT_FIELD) is True:
            logger.info("Order %s was already notified", order_id)
            return OrderResult(order_id, reason="already notified")
        return await self.notify_order(order_id, order)

    async def notify_order(self, order_id: str, order: dict[str, Any]) -> OrderResult:
        result = OrderResult(order_id)
        try:
            self.schemas.validate("order", order)
        except ValidationError as exc:
            logger.error("Order %s is malformed: %s", order_id, exc.message)
            result.reason = f"invalid order: {exc.message}"
            return result

        buyer_id = order["userId"]
        try:
            buyer = await self.contacts.lookup(buyer_id)
        except Exception as exc:
            logger.error("Could not load buyer %s for order %s: %s", buyer_id, order_id, exc)
            buyer = None
        if not buyer:
            logger.error("No buyer data for userId: %s", buyer_id)
            result.reason = "buyer not found"
            return result
        buyer_email = buyer.get("email")
        buyer_name = buyer.get("name") or DEFAULT_BUYER_NAME
        shipping_address = order.get("shippingAddress") or DEFAULT_SHIPPING_ADDRESS

        buyer_lines: list[str] = []
        sellers: dict[str | None, _SellerBucket] = {}
        for item in order["items"]:
            listing_id = item["listingId"]
            listing = await self._load_listing(listing_id, order_id)
            if not listing:
                continue
            title = listing.get("title") or listing_id
            seller_id = listing.get("ownerId")
            bucket = sellers.get(seller_id)
            if bucket is None:
                contact = await self.contacts.resolve(seller_id, default_name="Seller")
                bucket = sellers[seller_id] = _SellerBucket(contact)
            buyer_lines.append(f"{title}: Contact seller at {bucket.contact.email}")
            bucket.items.append(
                f"{title} (Qty: {item.get('quantity', 1)}) purchased by {buyer_name} ({buyer_email})"
            )

        messages: list[MailMessage] = []
        if buyer_email:
            messages.append(
                order_buyer_summary(self.sender, buyer_email, buyer_lines, shipping_address)
            )
        else:
            logger.warning("Buyer %s has no email; skipping buyer summary for order %s", buyer_id, order_id)
        for bucket in sellers.values():
            messages.append(
                order_seller_summary(self.sender, bucket.contact.email, bucket.items, shipping_address)
            )
        context = f"order {order_id}"
        result.deliveries = list(
            await asyncio.gather(*(deliver(self.mailer, message, context=context) for message in messages))
        )
        result.notified = True
        result.marked_sent = await self._mark_sent(order_id, order.get(EMAIL_SENT_FIELD))
        return result

    async def process_pending(self) -> list[OrderResult]:
        """Notify every order still flagged ``emailSent == false``."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results: list[OrderResult] = []
        cursor: Document | None = None

        async def _process(doc: Document) -> OrderResult:
            async with semaphore:
                try:
                    return await self.notify_order(doc.id, doc.data)
                except Exception as exc:
                    logger.error("Error processing order %s: %s", doc.id, exc, exc_info=True)
                    return OrderResult(doc.id, reason=f"unexpected error: {exc}")

        while True:
            page = await self.storage.query(
                self.collections.orders,
                [where(EMAIL_SENT_FIELD, "==", False)],
                limit=self.batch_size,
                start_after=cursor,
            )
            if not page:
                break
            results.extend(await asyncio.gather(*(_process(doc) for doc in page)))
            if len(page) < self.batch_size:
                break
            cursor = page[-1]
        if not results:
            logger.info("No new orders to process.")
        return results

    async def _load_listing(self, listing_id: str, order_id: str) -> dict[str, Any] | None:
        try:
            listing = await self.storage.get(self.collections.listings, listing_id)
        except Exception as exc:
            logger.error("Could not load listing %s for order %s: %s", listing_id, order_id, exc)
            return None
        if listing is None:
            logger.warning("Listing %s in order %s no longer exists", listing_id, order_id)
        return listing

    async def _mark_sent(self, order_id: str, observed: Any) -> bool:
        """Set the flag only if it still holds the value this handler read."""
        try:
            await self.storage.update(
                self.collections.orders,
                order_id,
                {EMAIL_SENT_FIELD: True},
                precondition={EMAIL_SENT_FIELD: observed},
            )
        except DocumentNotFound:
            logger.debug("Order %s is not stored; nothing to mark", order_id)
            return False
        except PreconditionFailed:
            logger.warning("Order %s was marked notified by another handler", order_id)
            return False
        except Exception as exc:
            logger.error("Could not mark order %s as notified: %s", order_id, exc)
            return False
        return True
