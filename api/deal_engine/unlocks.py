import logging
from typing import List, NamedTuple, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from . import ledger
from .db import atomic
from .errors import NotFound, NotUnlocked, ProjectNotLive, UnlockRevoked
from .events import append_event, investor_subject, user_actor
from .models import Project, Unlock
from .utils import utcnow

logger = logging.getLogger(__name__)


class UnlockResult(NamedTuple):
    unlock: Unlock
    remaining: int
    created: bool


def get_project(session: Session, project_id: int) -> Project:
    project = session.get(Project, project_id)
    if not project:
        raise NotFound("project not found", project_id=project_id)
    return project

def find_unlock(session: Session, investor_id: int, project_id: int) -> Optional[Unlock]:
    return session.exec(
        select(Unlock)
        .where(Unlock.investor_id == investor_id, Unlock.project_id == project_id)
        .execution_options(populate_existing=True)
    ).first()

def is_unlocked(session: Session, investor_id: int, project_id: int) -> bool:
    record = find_unlock(session, investor_id, project_id)
    return record is not None and record.revoked_at is None

def list_unlocks(session: Session, investor_id: int) -> List[Unlock]:
    return session.exec(
        select(Unlock).where(Unlock.investor_id == investor_id).order_by(Unlock.unlocked_at.desc())
    ).all()

def _existing_result(session: Session, record: Unlock) -> UnlockResult:
    if record.revoked_at is not None:
        raise UnlockRevoked(project_id=record.project_id)
    return UnlockResult(record, ledger.balance(session, record.investor_id), False)

def unlock(session: Session, investor_id: int, project_id: int) -> UnlockResult:
    """Spend one credit on a project, or return the unlock already paid for."""
    project = get_project(session, project_id)
    existing = find_unlock(session, investor_id, project_id)
    if existing:
        return _existing_result(session, existing)
    if not project.is_live:
        raise ProjectNotLive(project_id=project_id, status=project.status)

    try:
        with atomic(session):
            txn = ledger.consume(session, investor_id, 1)
            record = Unlock(investor_id=investor_id, project_id=project_id, credit_txn_id=txn.id)
            session.add(record)
            session.flush()
            append_event(
                session,
                investor_subject(investor_id),
                user_actor(investor_id),
                "unlocked",
                {"project_id": project_id, "transaction_id": txn.id},
            )
    except IntegrityError:
        # a concurrent request for the same pair won; its credit is the only one spent
        existing = find_unlock(session, investor_id, project_id)
        if existing is None:
            raise
        logger.info("unlock of project %s by investor %s resolved to concurrent winner", project_id, investor_id)
        return _existing_result(session, existing)

    remaining = ledger.balance(session, investor_id)
    logger.info("investor %s unlocked project %s, remaining %s", investor_id, project_id, remaining)
    return UnlockResult(record, remaining, True)

def require_unlocked(session: Session, investor_id: int, project_id: int):
    if not is_unlocked(session, investor_id, project_id):
        raise NotUnlocked(project_id=project_id)

def revoke(session: Session, investor_id: int, project_id: int, reason: str) -> Unlock:
    record = find_unlock(session, investor_id, project_id)
    if record is None:
        raise NotFound("unlock not found", investor_id=investor_id, project_id=project_id)
    if record.revoked_at is not None:
        return record
    ledger.ensure_account(session, investor_id)
    with atomic(session):
        ledger.lock_account(session, investor_id)
        record.revoked_at = utcnow()
        record.revoked_reason = reason
        session.add(record)
        append_event(
            session,
            investor_subject(investor_id),
            "admin",
            "revoked",
            {"project_id": project_id, "reason": reason},
        )
    session.refresh(record)
    logger.warning("unlock of project %s by investor %s revoked: %s", project_id, investor_id, reason)
    return record
