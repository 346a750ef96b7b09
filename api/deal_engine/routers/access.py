from fastapi import APIRouter, Depends
from sqlmodel import Session
from .. import access
from ..auth import Caller, ensure_acting_as, resolve_caller
from ..db import get_session

router = APIRouter()

@router.get("/access")
def check_access(
    investor_id: int,
    project_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    decision = access.evaluate_access(session, investor_id, project_id)
    return {
        "investor_id": decision.investor_id,
        "project_id": decision.project_id,
        "can_view_sensitive": decision.can_view_sensitive,
        "missing": decision.missing,
        "requires_addendum": decision.requires_addendum,
    }
