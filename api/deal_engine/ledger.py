"""
View-credit ledger.

``CreditAccount`` keeps two monotonic counters per investor. The remaining
balance is always derived from them. Purchases are deduplicated by the unique
``payment_ref`` on ``CreditTransaction``; consumption is a single conditional
UPDATE so two concurrent debits can never take the balance below zero.
"""

import logging
from typing import List, NamedTuple, Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from .db import atomic
from .errors import DuplicatePurchase, InsufficientCredits, InvalidAmount
from .events import append_event, investor_subject, user_actor
from .models import CreditAccount, CreditTransaction
from .utils import utcnow

logger = logging.getLogger(__name__)


class PurchaseResult(NamedTuple):
    remaining: int
    transaction: CreditTransaction
    duplicate: bool


def get_account(session: Session, investor_id: int) -> Optional[CreditAccount]:
    return session.exec(
        select(CreditAccount)
        .where(CreditAccount.investor_id == investor_id)
        .execution_options(populate_existing=True)
    ).first()

def balance(session: Session, investor_id: int) -> int:
    row = session.exec(
        select(CreditAccount.total_purchased, CreditAccount.total_consumed).where(
            CreditAccount.investor_id == investor_id
        )
    ).first()
    if row is None:
        return 0
    purchased, consumed = row
    return purchased - consumed

def list_transactions(session: Session, investor_id: int) -> List[CreditTransaction]:
    return session.exec(
        select(CreditTransaction)
        .where(CreditTransaction.investor_id == investor_id)
        .order_by(CreditTransaction.id.desc())
    ).all()

def _find_purchase(session: Session, payment_ref: str) -> Optional[CreditTransaction]:
    return session.exec(
        select(CreditTransaction).where(CreditTransaction.payment_ref == payment_ref)
    ).first()

def _replay(session: Session, prior: CreditTransaction, investor_id: int, credits: int) -> PurchaseResult:
    if prior.investor_id != investor_id or prior.credits != credits:
        raise DuplicatePurchase(payment_ref=prior.payment_ref)
    logger.info("purchase %s already applied for investor %s", prior.payment_ref, investor_id)
    return PurchaseResult(balance(session, investor_id), prior, True)

def ensure_account(session: Session, investor_id: int):
    """Create the investor's account row in its own transaction if it is missing."""
    if get_account(session, investor_id):
        return
    try:
        with atomic(session):
            session.add(CreditAccount(investor_id=investor_id))
    except IntegrityError:
        # created by a concurrent first purchase
        logger.debug("credit account for investor %s created concurrently", investor_id)

def _account_for_update(investor_id: int):
    return select(CreditAccount).where(CreditAccount.investor_id == investor_id).with_for_update()

def lock_account(session: Session, investor_id: int):
    """Row-lock the account inside the caller's transaction.

    Everything appended to an investor's audit chain is serialised on this
    row: purchases and debits already update it, other writers take this lock
    before reading the chain head.
    """
    session.exec(_account_for_update(investor_id)).first()

def purchase(session: Session, investor_id: int, credits: int, payment_ref: str) -> PurchaseResult:
    if credits is None or credits <= 0:
        raise InvalidAmount("credits must be a positive integer", credits=credits)

    prior = _find_purchase(session, payment_ref)
    if prior:
        return _replay(session, prior, investor_id, credits)

    ensure_account(session, investor_id)
    now = utcnow()
    try:
        with atomic(session):
            session.exec(
                update(CreditAccount)
                .where(CreditAccount.investor_id == investor_id)
                .values(total_purchased=CreditAccount.total_purchased + credits, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            remaining = balance(session, investor_id)
            txn = CreditTransaction(
                investor_id=investor_id,
                kind="purchase",
                credits=credits,
                payment_ref=payment_ref,
                balance_after=remaining,
                created_at=now,
            )
            session.add(txn)
            session.flush()
            append_event(
                session,
                investor_subject(investor_id),
                "system",
                "purchased",
                {"credits": credits, "payment_ref": payment_ref, "transaction_id": txn.id},
            )
    except IntegrityError:
        prior = _find_purchase(session, payment_ref)
        if prior is None:
            raise
        return _replay(session, prior, investor_id, credits)

    logger.info("investor %s purchased %s credits (%s), remaining %s", investor_id, credits, payment_ref, remaining)
    return PurchaseResult(remaining, txn, False)

def consume(session: Session, investor_id: int, count: int = 1, actor_id: Optional[int] = None) -> CreditTransaction:
    """Debit ``count`` credits. Runs inside the caller's transaction and never commits."""
    if count <= 0:
        raise InvalidAmount("count must be a positive integer", count=count)
    result = session.exec(
        update(CreditAccount)
        .where(
            CreditAccount.investor_id == investor_id,
            CreditAccount.total_purchased - CreditAccount.total_consumed >= count,
        )
        .values(total_consumed=CreditAccount.total_consumed + count, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientCredits(remaining=balance(session, investor_id), required=count)
    txn = CreditTransaction(
        investor_id=investor_id,
        kind="consume",
        credits=count,
        balance_after=balance(session, investor_id),
    )
    session.add(txn)
    session.flush()
    append_event(
        session,
        investor_subject(investor_id),
        user_actor(actor_id if actor_id is not None else investor_id),
        "consumed",
        {"credits": count, "transaction_id": txn.id},
    )
    return txn
