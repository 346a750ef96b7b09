import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from .. import access, unlocks
from ..auth import Caller, ensure_acting_as, require_admin, resolve_caller
from ..db import get_session
from ..errors import NotFound, RoleMismatch
from ..models import LIVE_PROJECT_STATUSES, Project
from ..schemas import ProjectCreate, ProjectNDAConfig, ProjectStatusUpdate
from ..utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

def _serialize_project(project: Project, include_sensitive: bool = False):
    data = access.sensitive_view(project) if include_sensitive else access.public_view(project)
    data["created_at"] = project.created_at
    data["approved_at"] = project.approved_at
    return data

def _ensure_owner(caller: Caller, project: Project):
    if caller.is_admin:
        return
    if caller.user_id != project.developer_id:
        raise RoleMismatch("only the project's developer may change it", project_id=project.id)

@router.post("", status_code=201)
def create_project(
    payload: ProjectCreate,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    developer_id = payload.developer_id if payload.developer_id is not None else caller.user_id
    if developer_id is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "developer_id required")
    ensure_acting_as(caller, developer_id)
    project = Project(**payload.model_dump(exclude={"developer_id"}), developer_id=developer_id)
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("project %s created for developer %s", project.id, developer_id)
    # the owner sees everything they entered
    return _serialize_project(project, include_sensitive=True)

@router.get("")
def list_live_projects(
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    projects = session.exec(
        select(Project).where(Project.status.in_(LIVE_PROJECT_STATUSES)).order_by(Project.created_at.desc())
    ).all()
    return [_serialize_project(p) for p in projects]

@router.get("/{project_id}")
def get_project(
    project_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    project = unlocks.get_project(session, project_id)
    if not project.is_live and not (caller.is_admin or caller.user_id == project.developer_id):
        # unpublished projects look the same as missing ones
        raise NotFound("project not found", project_id=project_id)
    data = _serialize_project(project)
    if caller.user_id is not None:
        data["unlocked"] = unlocks.is_unlocked(session, caller.user_id, project_id)
    return data

@router.patch("/{project_id}/status")
def update_project_status(
    project_id: int,
    payload: ProjectStatusUpdate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin),
):
    project = unlocks.get_project(session, project_id)
    project.status = payload.status
    if payload.status == "approved" and project.approved_at is None:
        project.approved_at = utcnow()
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("project %s moved to %s", project_id, project.status)
    return _serialize_project(project)

@router.put("/{project_id}/nda-config")
def update_nda_config(
    project_id: int,
    payload: ProjectNDAConfig,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    project = unlocks.get_project(session, project_id)
    _ensure_owner(caller, project)
    project.requires_addendum = payload.requires_addendum
    project.nda_custom_terms = payload.custom_terms
    project.nda_ip_clauses = payload.ip_clauses
    session.add(project)
    session.commit()
    session.refresh(project)
    return {
        "project_id": project.id,
        "requires_addendum": project.requires_addendum,
        "custom_terms": project.nda_custom_terms,
        "ip_clauses": project.nda_ip_clauses,
    }

@router.get("/{project_id}/sensitive")
def get_sensitive_project(
    project_id: int,
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    return access.request_sensitive_view(session, investor_id, project_id)
