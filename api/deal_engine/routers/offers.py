from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session
from .. import events, notifications, offers
from ..auth import Caller, ensure_acting_as, resolve_caller
from ..db import get_session
from ..errors import RoleMismatch
from ..models import Offer
from ..schemas import OfferAction, OfferCancel, OfferCreate, OfferSign

router = APIRouter()

def _serialize_offer(offer: Offer):
    return {
        "id": offer.id,
        "project_id": offer.project_id,
        "investor_id": offer.investor_id,
        "developer_id": offer.developer_id,
        "investment_amount": offer.investment_amount,
        "currency": offer.currency,
        "valuation_cap": offer.valuation_cap,
        "discount_rate": offer.discount_rate,
        "is_mfn": offer.is_mfn,
        "pro_rata_rights": offer.pro_rata_rights,
        "message": offer.message,
        "status": offer.status,
        "version": offer.version,
        "sent_at": offer.sent_at,
        "investor_signed_at": offer.investor_signed_at,
        "investor_signed_name": offer.investor_signed_name,
        "developer_signed_at": offer.developer_signed_at,
        "developer_signed_name": offer.developer_signed_name,
        "executed_at": offer.executed_at,
        "cancelled_at": offer.cancelled_at,
        "cancelled_by": offer.cancelled_by,
        "cancel_reason": offer.cancel_reason,
        "commission_rate": offer.commission_rate,
        "commission_amount": offer.commission_amount,
        "created_at": offer.created_at,
        "updated_at": offer.updated_at,
    }

def _ensure_party(caller: Caller, offer: Offer):
    if caller.is_admin:
        return
    if caller.user_id not in (offer.investor_id, offer.developer_id):
        raise RoleMismatch("caller is not a party to this offer", offer_id=offer.id)

def _notify(background_tasks: BackgroundTasks, session: Session, offer: Offer):
    recipients = notifications.offer_recipients(session, offer)
    if not recipients:
        return
    subject, body, html_body = notifications.offer_message(offer)
    background_tasks.add_task(notifications.dispatch, recipients, subject, body, html_body)

@router.post("", status_code=201)
def create_offer(
    payload: OfferCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.investor_id)
    terms = payload.model_dump(exclude={"investor_id", "project_id", "send"})
    offer = offers.create_offer(session, payload.investor_id, payload.project_id, terms, send=payload.send)
    _notify(background_tasks, session, offer)
    return _serialize_offer(offer)

@router.get("")
def list_offers(
    investor_id: Optional[int] = None,
    developer_id: Optional[int] = None,
    project_id: Optional[int] = None,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    if not caller.is_admin:
        # non-admins only ever see their own side of a deal
        if investor_id is None and developer_id is None:
            investor_id = caller.user_id if caller.role == "investor" else None
            developer_id = caller.user_id if caller.role != "investor" else None
        for party_id in (investor_id, developer_id):
            if party_id is not None:
                ensure_acting_as(caller, party_id)
    rows = offers.list_offers(session, investor_id=investor_id, developer_id=developer_id, project_id=project_id)
    return [_serialize_offer(o) for o in rows]

@router.get("/{offer_id}")
def get_offer(
    offer_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    offer = offers.get_offer(session, offer_id)
    _ensure_party(caller, offer)
    return _serialize_offer(offer)

@router.get("/{offer_id}/events")
def get_offer_events(
    offer_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    offer = offers.get_offer(session, offer_id)
    _ensure_party(caller, offer)
    rows = events.list_events(session, events.offer_subject(offer_id))
    return {
        "offer_id": offer_id,
        "verified": events.verify_chain(rows),
        "events": [
            {"id": e.id, "actor": e.actor, "type": e.type, "at": e.at, "hash": e.hash, "prev_hash": e.prev_hash}
            for e in rows
        ],
    }

@router.post("/{offer_id}/send")
def send_offer(
    offer_id: int,
    payload: OfferAction,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.actor_id)
    offer = offers.send_offer(session, offer_id, payload.actor_id)
    _notify(background_tasks, session, offer)
    return _serialize_offer(offer)

@router.post("/{offer_id}/sign")
def sign_offer(
    offer_id: int,
    payload: OfferSign,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.actor_id)
    offer = offers.sign_offer(
        session, offer_id, payload.actor_id, as_role=payload.as_role, signed_name=payload.signed_name
    )
    _notify(background_tasks, session, offer)
    return _serialize_offer(offer)

@router.post("/{offer_id}/cancel")
def cancel_offer(
    offer_id: int,
    payload: OfferCancel,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.actor_id)
    offer = offers.cancel_offer(session, offer_id, payload.actor_id, payload.reason)
    _notify(background_tasks, session, offer)
    return _serialize_offer(offer)
