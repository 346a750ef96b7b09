from fastapi import APIRouter, Depends, Request
from sqlmodel import Session
from .. import nda
from ..auth import Caller, ensure_acting_as, resolve_caller
from ..db import get_session
from ..errors import MasterNDARequired
from ..models import NDASignature, User
from ..schemas import AddendumSign, MasterNDASign
from ..unlocks import get_project

router = APIRouter()

def _serialize_signature(signature: NDASignature, created: bool):
    return {
        "signed_at": signature.signed_at,
        "scope": signature.scope,
        "project_id": signature.project_id,
        "document_version": signature.document_version,
        "document_hash": signature.document_hash,
        "created": created,
    }

def _client(request: Request):
    return (request.client.host if request.client else None), request.headers.get("user-agent")

def _display_name(session: Session, investor_id: int) -> str:
    user = session.get(User, investor_id)
    return user.name if user else "[Receiving Party]"

@router.post("/master/sign")
def sign_master_nda(
    payload: MasterNDASign,
    request: Request,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.investor_id)
    ip, ua = _client(request)
    signature, created = nda.sign_master(
        session, payload.investor_id, payload.payload.model_dump(), ip=ip, user_agent=ua
    )
    return _serialize_signature(signature, created)

@router.get("/master/status")
def master_nda_status(
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    signature = nda.find_signature(session, investor_id, nda.MASTER_SCOPE)
    return {
        "has_master_nda": signature is not None,
        "signed_at": signature.signed_at if signature else None,
        "document_version": signature.document_version if signature else None,
    }

@router.get("/master/content")
def master_nda_content(
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    return {"content": nda.render_master(_display_name(session, investor_id))}

@router.post("/addendum/sign")
def sign_project_addendum(
    payload: AddendumSign,
    request: Request,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, payload.investor_id)
    ip, ua = _client(request)
    signature, created = nda.sign_addendum(
        session, payload.investor_id, payload.project_id, payload.payload.model_dump(), ip=ip, user_agent=ua
    )
    return _serialize_signature(signature, created)

@router.get("/addendum/content")
def addendum_content(
    investor_id: int,
    project_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    project = get_project(session, project_id)
    master = nda.find_signature(session, investor_id, nda.MASTER_SCOPE)
    if master is None:
        raise MasterNDARequired()
    content = nda.render_addendum(project, _display_name(session, investor_id), master.signed_at)
    return {"project_id": project_id, "requires_addendum": project.requires_addendum, "content": content}
