import logging
from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from . import offer_machine as machine
from .config import COMMISSION_RATE, OFFER_TRANSITION_ATTEMPTS
from .db import atomic
from .errors import InvalidAmount, NotFound, OfferAlreadyActive, ProjectNotLive, RoleMismatch, StaleOffer
from .events import append_event, offer_subject, user_actor
from .models import Offer
from .offer_machine import OfferEvent, OfferStatus
from .unlocks import get_project, require_unlocked
from .utils import utcnow

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    OfferEvent.SEND: "sent",
    OfferEvent.SIGN_AS_INVESTOR: "signed",
    OfferEvent.SIGN_AS_FOUNDER: "signed",
    OfferEvent.CANCEL: "cancelled",
}


def get_offer(session: Session, offer_id: int) -> Offer:
    offer = session.exec(
        select(Offer).where(Offer.id == offer_id).execution_options(populate_existing=True)
    ).first()
    if not offer:
        raise NotFound("offer not found", offer_id=offer_id)
    return offer

def find_active_offer(session: Session, investor_id: int, project_id: int) -> Optional[Offer]:
    return session.exec(
        select(Offer).where(
            Offer.investor_id == investor_id,
            Offer.project_id == project_id,
            Offer.status.in_(OfferStatus.ACTIVE),
        )
    ).first()

def list_offers(session: Session, investor_id: Optional[int] = None, developer_id: Optional[int] = None,
                project_id: Optional[int] = None) -> List[Offer]:
    stmt = select(Offer)
    if investor_id is not None:
        stmt = stmt.where(Offer.investor_id == investor_id)
    if developer_id is not None:
        stmt = stmt.where(Offer.developer_id == developer_id)
    if project_id is not None:
        stmt = stmt.where(Offer.project_id == project_id)
    return session.exec(stmt.order_by(Offer.created_at.desc(), Offer.id.desc())).all()

def _validate_terms(terms: dict, min_investment: int):
    amount = terms.get("investment_amount")
    if amount is None or amount <= 0:
        raise InvalidAmount("investment_amount must be positive", investment_amount=amount)
    if amount < min_investment:
        raise InvalidAmount(
            "investment_amount is below the project minimum",
            investment_amount=amount,
            min_investment=min_investment,
        )
    cap = terms.get("valuation_cap")
    if cap is not None and cap <= 0:
        raise InvalidAmount("valuation_cap must be positive", valuation_cap=cap)
    discount = terms.get("discount_rate")
    if discount is not None and not 0 <= discount < 1:
        raise InvalidAmount("discount_rate must be between 0 and 1", discount_rate=discount)

def create_offer(session: Session, investor_id: int, project_id: int, terms: dict, send: bool = True) -> Offer:
    project = get_project(session, project_id)
    if not project.is_live:
        raise ProjectNotLive(project_id=project_id, status=project.status)
    if project.developer_id == investor_id:
        raise RoleMismatch("developers cannot make offers on their own project", project_id=project_id)
    require_unlocked(session, investor_id, project_id)
    _validate_terms(terms, project.min_investment)
    if find_active_offer(session, investor_id, project_id):
        raise OfferAlreadyActive(project_id=project_id)

    amount = terms["investment_amount"]
    now = utcnow()
    offer = Offer(
        project_id=project_id,
        investor_id=investor_id,
        developer_id=project.developer_id,
        investment_amount=amount,
        valuation_cap=terms.get("valuation_cap"),
        discount_rate=terms.get("discount_rate"),
        is_mfn=bool(terms.get("is_mfn")),
        pro_rata_rights=bool(terms.get("pro_rata_rights")),
        message=terms.get("message") or "",
        status=OfferStatus.DRAFT,
        commission_rate=COMMISSION_RATE,
        commission_amount=int(amount * COMMISSION_RATE),
        created_at=now,
        updated_at=now,
    )
    try:
        with atomic(session):
            session.add(offer)
            session.flush()
            actor = user_actor(investor_id)
            append_event(
                session,
                offer_subject(offer.id),
                actor,
                "created",
                {"project_id": project_id, "investment_amount": amount},
            )
            if send:
                for key, value in machine.apply(offer, OfferEvent.SEND, machine.INVESTOR, now).items():
                    setattr(offer, key, value)
                session.add(offer)
                append_event(session, offer_subject(offer.id), actor, "sent", {"status": offer.status})
    except IntegrityError:
        raise OfferAlreadyActive(project_id=project_id)
    session.refresh(offer)
    logger.info("offer %s created by investor %s on project %s (%s)", offer.id, investor_id, project_id, offer.status)
    return offer

def _transition(session: Session, offer_id: int, actor_id: int, event: Optional[str] = None,
                declared_role: Optional[str] = None, reason: Optional[str] = None,
                signed_name: Optional[str] = None) -> Offer:
    for attempt in range(1, OFFER_TRANSITION_ATTEMPTS + 1):
        offer = get_offer(session, offer_id)
        role = machine.role_of(offer, actor_id, declared_role)
        offer_event = event or machine.sign_event_for(role)
        now = utcnow()
        changes = machine.apply(offer, offer_event, role, now, actor_id=actor_id, reason=reason, signed_name=signed_name)
        expected_version = offer.version

        with atomic(session):
            result = session.exec(
                update(Offer)
                .where(Offer.id == offer_id, Offer.version == expected_version)
                .values(version=expected_version + 1, updated_at=now, **changes)
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount == 1
            if applied:
                subject = offer_subject(offer_id)
                actor = user_actor(actor_id)
                meta = {"role": role, "from": offer.status, "to": changes["status"]}
                if reason:
                    meta["reason"] = changes.get("cancel_reason")
                append_event(session, subject, actor, EVENT_TYPES[offer_event], meta)
                if changes["status"] == OfferStatus.EXECUTED:
                    append_event(session, subject, "system", "executed", {"executed_at": now})

        if applied:
            offer = get_offer(session, offer_id)
            logger.info("offer %s: %s by %s -> %s", offer_id, offer_event, role, offer.status)
            return offer
        logger.warning("offer %s changed concurrently (attempt %s), re-evaluating", offer_id, attempt)
    raise StaleOffer(offer_id=offer_id)

def send_offer(session: Session, offer_id: int, actor_id: int) -> Offer:
    return _transition(session, offer_id, actor_id, OfferEvent.SEND)

def sign_offer(session: Session, offer_id: int, actor_id: int, as_role: Optional[str] = None,
               signed_name: Optional[str] = None) -> Offer:
    """Sign as whichever party ``actor_id`` is on the offer; ``as_role`` must agree if given."""
    return _transition(session, offer_id, actor_id, declared_role=as_role, signed_name=signed_name)

def cancel_offer(session: Session, offer_id: int, actor_id: int, reason: str) -> Offer:
    return _transition(session, offer_id, actor_id, OfferEvent.CANCEL, reason=reason)
