"""
SAFE-note offer state machine.

Pure transition logic, no database access. ``offers`` loads an offer, asks
this module for the column changes an event produces, and persists them with
an optimistic version check.

    draft --send--> sent --sign_as_founder--> signed_founder --sign_as_investor--> executed
                         --sign_as_investor--> signed_investor --sign_as_founder--> executed

Any non-executed state can be cancelled by either party. ``executed`` and
``cancelled`` are terminal.
"""

from datetime import datetime
from typing import Dict, Optional, Tuple
from .errors import AlreadySigned, IllegalTransition, MissingCancelReason, OfferAlreadyExecuted, RoleMismatch


class OfferStatus:
    DRAFT = "draft"
    SENT = "sent"
    SIGNED_INVESTOR = "signed_investor"
    SIGNED_FOUNDER = "signed_founder"
    EXECUTED = "executed"
    CANCELLED = "cancelled"

    ACTIVE = (DRAFT, SENT, SIGNED_INVESTOR, SIGNED_FOUNDER)
    TERMINAL = (EXECUTED, CANCELLED)


class OfferEvent:
    SEND = "send"
    SIGN_AS_INVESTOR = "sign_as_investor"
    SIGN_AS_FOUNDER = "sign_as_founder"
    CANCEL = "cancel"


INVESTOR = "investor"
DEVELOPER = "developer"

# accepted spellings of a client-declared role
ROLE_ALIASES = {
    "investor": INVESTOR,
    "developer": DEVELOPER,
    "founder": DEVELOPER,
}

TRANSITIONS: Dict[Tuple[str, str], Tuple[str, str]] = {
    (OfferStatus.DRAFT, OfferEvent.SEND): (INVESTOR, OfferStatus.SENT),
    (OfferStatus.SENT, OfferEvent.SIGN_AS_FOUNDER): (DEVELOPER, OfferStatus.SIGNED_FOUNDER),
    (OfferStatus.SENT, OfferEvent.SIGN_AS_INVESTOR): (INVESTOR, OfferStatus.SIGNED_INVESTOR),
    (OfferStatus.SIGNED_FOUNDER, OfferEvent.SIGN_AS_INVESTOR): (INVESTOR, OfferStatus.EXECUTED),
    (OfferStatus.SIGNED_INVESTOR, OfferEvent.SIGN_AS_FOUNDER): (DEVELOPER, OfferStatus.EXECUTED),
}

SIGN_EVENTS = {
    INVESTOR: OfferEvent.SIGN_AS_INVESTOR,
    DEVELOPER: OfferEvent.SIGN_AS_FOUNDER,
}


def role_of(offer, actor_id: int, declared_role: Optional[str] = None) -> str:
    """Derive the caller's role from the ids stored on the offer."""
    if actor_id == offer.investor_id:
        role = INVESTOR
    elif actor_id == offer.developer_id:
        role = DEVELOPER
    else:
        raise RoleMismatch("caller is not a party to this offer", offer_id=offer.id)
    if declared_role is not None and ROLE_ALIASES.get(declared_role.lower()) != role:
        raise RoleMismatch(f"caller cannot act as {declared_role}", offer_id=offer.id)
    return role

def sign_event_for(role: str) -> str:
    return SIGN_EVENTS[role]

def _signed_at(offer, role: str):
    return offer.investor_signed_at if role == INVESTOR else offer.developer_signed_at

def next_status(offer, event: str, role: str) -> str:
    if offer.status == OfferStatus.CANCELLED:
        raise IllegalTransition(offer_id=offer.id, status=offer.status, event=event)

    if event == OfferEvent.CANCEL:
        if offer.status == OfferStatus.EXECUTED:
            raise OfferAlreadyExecuted(offer_id=offer.id)
        return OfferStatus.CANCELLED

    if event in (OfferEvent.SIGN_AS_INVESTOR, OfferEvent.SIGN_AS_FOUNDER):
        signer_role = INVESTOR if event == OfferEvent.SIGN_AS_INVESTOR else DEVELOPER
        if role != signer_role:
            raise RoleMismatch(f"{role} cannot {event}", offer_id=offer.id)
        if _signed_at(offer, role) is not None:
            raise AlreadySigned(offer_id=offer.id, status=offer.status)

    entry = TRANSITIONS.get((offer.status, event))
    if entry is None:
        raise IllegalTransition(offer_id=offer.id, status=offer.status, event=event)
    allowed_role, target = entry
    if role != allowed_role:
        raise RoleMismatch(f"{role} cannot {event}", offer_id=offer.id)
    return target

def apply(offer, event: str, role: str, now: datetime, actor_id: Optional[int] = None,
          reason: Optional[str] = None, signed_name: Optional[str] = None) -> dict:
    """Return the column changes ``event`` makes to ``offer``. Raises on invalid events."""
    target = next_status(offer, event, role)
    # terminal-state errors win over a missing reason
    if event == OfferEvent.CANCEL and not (reason or "").strip():
        raise MissingCancelReason(offer_id=offer.id)
    changes = {"status": target}

    if event == OfferEvent.SEND:
        changes["sent_at"] = now
    elif event == OfferEvent.SIGN_AS_INVESTOR:
        changes["investor_signed_at"] = now
        changes["investor_signed_name"] = signed_name
    elif event == OfferEvent.SIGN_AS_FOUNDER:
        changes["developer_signed_at"] = now
        changes["developer_signed_name"] = signed_name
    elif event == OfferEvent.CANCEL:
        changes["cancelled_at"] = now
        changes["cancelled_by"] = actor_id
        changes["cancel_reason"] = reason.strip()

    if target == OfferStatus.EXECUTED:
        # stamped with the second signature, in the same write
        changes["executed_at"] = now
    return changes
