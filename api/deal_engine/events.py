"""
Append-only audit trail.

Every committed mutation writes one ``DealEvent`` in the same transaction.
Events are chained per subject: each row stores the previous row's hash and
its own hash over ``prev_hash + meta_json``, so a deleted or edited row breaks
verification of everything after it.

Callers serialise appends per subject before calling ``append_event``: offer
chains on the versioned UPDATE of the offer row, investor chains on the
investor's ``CreditAccount`` row (see ``ledger.lock_account``). The unique
``(subject, prev_hash)`` constraint rejects any append that slips past that.
"""

from typing import List, Optional
from sqlmodel import Session, select
from .models import DealEvent
from .utils import canonical_json, sha256_bytes

GENESIS_HASH = "0" * 64

def offer_subject(offer_id: int) -> str:
    return f"offer:{offer_id}"

def investor_subject(investor_id: int) -> str:
    return f"investor:{investor_id}"

def user_actor(user_id: Optional[int]) -> str:
    return f"user:{user_id}" if user_id is not None else "system"

def append_event(session: Session, subject: str, actor: str, type_: str, meta: dict, ip=None, ua=None) -> DealEvent:
    # no commit here: the event belongs to the caller's transaction
    last = session.exec(
        select(DealEvent).where(DealEvent.subject == subject).order_by(DealEvent.id.desc())
    ).first()
    prev_hash = last.hash if last else GENESIS_HASH
    payload = {"subject": subject, "actor": actor, "type": type_, "meta": meta}
    event = DealEvent(
        subject=subject,
        actor=actor,
        type=type_,
        meta_json=canonical_json(payload),
        prev_hash=prev_hash,
        ip=ip,
        ua=ua,
    )
    event.hash = sha256_bytes((prev_hash + event.meta_json).encode())
    session.add(event)
    session.flush()
    return event

def list_events(session: Session, subject: str) -> List[DealEvent]:
    return session.exec(
        select(DealEvent).where(DealEvent.subject == subject).order_by(DealEvent.id)
    ).all()

def verify_chain(events: List[DealEvent]) -> bool:
    prev_hash = GENESIS_HASH
    for event in events:
        if event.prev_hash != prev_hash:
            return False
        if event.hash != sha256_bytes((prev_hash + event.meta_json).encode()):
            return False
        prev_hash = event.hash
    return True
