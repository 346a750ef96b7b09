"""
Fire-and-forget notices to the parties of a deal.

Routers resolve recipients while the request session is open and queue
``dispatch`` as a background task. Delivery failures are logged and never
reach the caller.
"""

import logging
from html import escape
from typing import List, Optional, Tuple
from sqlmodel import Session
from .config import APP_BASE_URL, PLATFORM_NAME
from .email import send_email
from .models import Offer, User
from .offer_machine import OfferStatus

logger = logging.getLogger(__name__)

OFFER_HEADLINES = {
    OfferStatus.DRAFT: "Offer drafted",
    OfferStatus.SENT: "New investment offer",
    OfferStatus.SIGNED_INVESTOR: "Investor signed the SAFE note",
    OfferStatus.SIGNED_FOUNDER: "Founder signed the SAFE note",
    OfferStatus.EXECUTED: "SAFE note executed",
    OfferStatus.CANCELLED: "Offer cancelled",
}

def user_email(session: Session, user_id: Optional[int]) -> Optional[str]:
    if user_id is None:
        return None
    user = session.get(User, user_id)
    return user.email if user else None

def offer_recipients(session: Session, offer: Offer) -> List[str]:
    emails = [user_email(session, offer.investor_id), user_email(session, offer.developer_id)]
    return [email for email in emails if email]

def _format_amount(amount: int, currency: str) -> str:
    symbol = "$" if currency == "usd" else f"{currency.upper()} "
    return f"{symbol}{amount / 100:,.2f}"

def offer_message(offer: Offer) -> Tuple[str, str, str]:
    headline = OFFER_HEADLINES.get(offer.status, "Offer updated")
    amount = _format_amount(offer.investment_amount, offer.currency)
    link = f"{APP_BASE_URL}/offers/{offer.id}"
    subject = f"{headline}: {amount} (offer #{offer.id})"
    lines = [
        f"{headline}.",
        f"Amount: {amount}",
        f"Status: {offer.status}",
    ]
    if offer.status == OfferStatus.CANCELLED and offer.cancel_reason:
        lines.append(f"Reason: {offer.cancel_reason}")
    if offer.executed_at:
        lines.append(f"Executed at: {offer.executed_at:%Y-%m-%d %H:%M} UTC")
    lines.append("")
    lines.append(f"Open offer: {link}")
    text_body = "\n".join(lines)
    html_body = (
        "<html><body>"
        f"<h2>{escape(headline)}</h2>"
        + "".join(f"<p>{escape(line)}</p>" for line in lines[1:-2])
        + f'<p><a href="{escape(link)}">Open offer</a></p>'
        "</body></html>"
    )
    return subject, text_body, html_body

def access_message(title: str, step: str) -> Tuple[str, str]:
    subject = f"{PLATFORM_NAME}: {step} recorded for {title}"
    body = f"Your {step} for {title} has been recorded on {PLATFORM_NAME}."
    return subject, body

def dispatch(recipients: List[str], subject: str, body: str, html_body: Optional[str] = None):
    for to in recipients:
        try:
            send_email(to, subject, body, html_body=html_body)
        except Exception:
            logger.exception("notification %r to %s failed", subject, to)
