"""Plain-text message templates for every notification the service sends."""

from __future__ import annotations

from typing import Iterable

from ..mail import MailMessage
from .contacts import Contact

AUCTION_SELLER_SUBJECT = "Your Listing Bid Has Ended"
AUCTION_WINNER_SUBJECT = "Congratulations, You Won the Bid!"
ORDER_BUYER_SUBJECT = "Your Purchase Order Details"
ORDER_SELLER_SUBJECT = "Your Items Have Been Purchased"


def auction_seller_notice(sender: str, listing_id: str, seller: Contact, bidder: Contact) -> MailMessage:
    body = (
        f"Hello {seller.name},\n\n"
        f"Your listing ({listing_id}) bidding period has ended.\n"
        "The winning bidder is:\n"
        f"Name: {bidder.name}\n"
        f"Email: {bidder.email}\n\n"
        "Please contact them for the next steps."
    )
    return MailMessage(sender=sender, to=seller.email, subject=AUCTION_SELLER_SUBJECT, body=body)


def auction_winner_notice(sender: str, listing_id: str, seller: Contact, bidder: Contact) -> MailMessage:
    body = (
        f"Hello {bidder.name},\n\n"
        f"Congratulations! Your bid on listing ({listing_id}) has won.\n\n"
        "The seller's contact details are:\n"
        f"Name: {seller.name}\n"
        f"Email: {seller.email}\n\n"
        "Please contact the seller to proceed."
    )
    return MailMessage(sender=sender, to=bidder.email, subject=AUCTION_WINNER_SUBJECT, body=body)


def order_buyer_summary(
    sender: str,
    buyer_email: str,
    seller_lines: Iterable[str],
    shipping_address: str,
) -> MailMessage:
    lines = ["Thank you for your purchase! Here is the contact info for the sellers:", ""]
    lines.extend(seller_lines)
    lines.extend(["", f"Your Shipping Address: {shipping_address}", ""])
    return MailMessage(
        sender=sender,
        to=buyer_email,
        subject=ORDER_BUYER_SUBJECT,
        body="\n".join(lines),
    )


def order_seller_summary(
    sender: str,
    seller_email: str,
    item_lines: Iterable[str],
    shipping_address: str,
) -> MailMessage:
    lines = ["The following items of yours were purchased:", ""]
    lines.extend(item_lines)
    lines.extend(["", f"Buyer's Shipping Address: {shipping_address}", ""])
    return MailMessage(
        sender=sender,
        to=seller_email,
        subject=ORDER_SELLER_SUBJECT,
        body="\n".join(lines),
    )


def report_email(sender: str, recipient: str, category: str, flag: str, body_text: str) -> MailMessage:
    return MailMessage(sender=sender, to=recipient, subject=f"{category} - {flag}", body=body_text)
