"""
Single entry point for "may this investor see this project".

Composes the ledger, the unlock registry and the NDA gate. A denied view
always says which steps are still missing so the caller can show the next
one.
"""

from typing import List, NamedTuple
from sqlmodel import Session
from . import nda, unlocks
from .errors import SensitiveAccessDenied
from .models import Project

MISSING_UNLOCK = "unlock"
MISSING_MASTER_NDA = "master_nda"
MISSING_ADDENDUM = "addendum"

PUBLIC_FIELDS = ("id", "developer_id", "title", "tagline", "description", "category", "min_investment", "status")
SENSITIVE_FIELDS = (
    "problem",
    "solution",
    "business_model",
    "traction",
    "use_of_funds",
    "monthly_revenue",
    "pitch_deck_url",
    "financial_model_url",
    "contact_email",
)


class AccessDecision(NamedTuple):
    investor_id: int
    project_id: int
    can_view_sensitive: bool
    missing: List[str]
    requires_addendum: bool


def public_view(project: Project) -> dict:
    data = {name: getattr(project, name) for name in PUBLIC_FIELDS}
    data["requires_addendum"] = project.requires_addendum
    return data

def sensitive_view(project: Project) -> dict:
    data = public_view(project)
    data.update({name: getattr(project, name) for name in SENSITIVE_FIELDS})
    return data

def request_unlock(session: Session, investor_id: int, project_id: int) -> unlocks.UnlockResult:
    return unlocks.unlock(session, investor_id, project_id)

def evaluate_access(session: Session, investor_id: int, project_id: int) -> AccessDecision:
    project = unlocks.get_project(session, project_id)
    missing = []
    if not unlocks.is_unlocked(session, investor_id, project_id):
        missing.append(MISSING_UNLOCK)
    if not nda.has_master(session, investor_id):
        missing.append(MISSING_MASTER_NDA)
    if project.requires_addendum and not nda.has_addendum(session, investor_id, project_id):
        missing.append(MISSING_ADDENDUM)
    allowed = nda.can_view_sensitive(session, investor_id, project_id)
    return AccessDecision(investor_id, project_id, allowed, missing, project.requires_addendum)

def request_sensitive_view(session: Session, investor_id: int, project_id: int) -> dict:
    decision = evaluate_access(session, investor_id, project_id)
    if not decision.can_view_sensitive:
        raise SensitiveAccessDenied(project_id=project_id, missing=decision.missing)
    return sensitive_view(unlocks.get_project(session, project_id))
