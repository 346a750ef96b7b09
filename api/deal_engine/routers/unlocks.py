from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session
from .. import access, ledger, notifications, unlocks
from ..auth import Caller, ensure_acting_as, require_admin, resolve_caller
from ..db import get_session
from ..models import Unlock
from ..schemas import UnlockRequest, UnlockRevoke

router = APIRouter()

def _serialize_unlock(record: Unlock):
    return {
        "investor_id": record.investor_id,
        "project_id": record.project_id,
        "unlocked_at": record.unlocked_at,
        "credit_txn_id": record.credit_txn_id,
        "revoked_at": record.revoked_at,
        "revoked_reason": record.revoked_reason,
    }

@router.post("/unlock")
def unlock_project(
    payload: UnlockRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.investor_id)
    result = access.request_unlock(session, payload.investor_id, payload.project_id)
    if result.created:
        recipient = notifications.user_email(session, payload.investor_id)
        if recipient:
            project = unlocks.get_project(session, payload.project_id)
            subject, body = notifications.access_message(project.title, "project unlock")
            background_tasks.add_task(notifications.dispatch, [recipient], subject, body)
    return {
        "unlocked": True,
        "remaining": result.remaining,
        "unlocked_at": result.unlock.unlocked_at,
        "credit_txn_id": result.unlock.credit_txn_id,
        "created": result.created,
    }

@router.get("/unlocks/{investor_id}")
def list_unlocked_projects(
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    return {
        "investor_id": investor_id,
        "remaining": ledger.balance(session, investor_id),
        "unlocks": [_serialize_unlock(u) for u in unlocks.list_unlocks(session, investor_id)],
    }

@router.post("/unlocks/revoke")
def revoke_unlock(
    payload: UnlockRevoke,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin),
):
    record = unlocks.revoke(session, payload.investor_id, payload.project_id, payload.reason)
    return _serialize_unlock(record)
