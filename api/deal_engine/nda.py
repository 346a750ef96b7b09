"""
Two-tier confidentiality gate.

An investor signs the platform-wide master NDA once. Projects that require it
additionally need a per-project addendum, which can only be signed after the
project is unlocked. Signing is idempotent: a repeated signature returns the
existing row.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from . import ledger
from .config import NDA_VALIDITY_YEARS, NDA_VERSION, PLATFORM_NAME
from .db import atomic
from .errors import MasterNDARequired, NotUnlocked, ProjectDoesNotRequireAddendum
from .events import append_event, investor_subject, user_actor
from .models import NDASignature, Project
from .unlocks import get_project, is_unlocked
from .utils import canonical_json, sha256_bytes, utcnow

logger = logging.getLogger(__name__)

MASTER_SCOPE = "master"
ADDENDUM_SCOPE = "addendum"

MASTER_TEMPLATE = """PLATFORM NON-DISCLOSURE AGREEMENT

This Non-Disclosure Agreement is entered into as of {signed_date} between
{platform} ("Platform") and the undersigned party ("Receiving Party").

1. CONFIDENTIAL INFORMATION
The Receiving Party agrees to keep in confidence all information received
through the Platform about listed companies: business plans, financial
projections, technical specifications, customers, team details and
investment terms.

2. OBLIGATIONS
The Receiving Party will use Confidential Information solely to evaluate
potential investments and will not disclose it to third parties without
written consent.

3. TERM
This Agreement remains in effect for {validity_years} years from signature.

Signed: {signed_name}
Date: {signed_date}
Document Version: {version}
"""

ADDENDUM_TEMPLATE = """PROJECT-SPECIFIC CONFIDENTIALITY ADDENDUM

This Addendum supplements the Master Non-Disclosure Agreement dated
{master_date} between the Receiving Party and {platform}.

Project: {project_title}
Addendum Date: {signed_date}

All business plans, financial projections, valuations, technical material,
customer relationships and cap table information of {project_title}
constitute Confidential Information under the Master NDA.
{custom_terms}{ip_clauses}
Signed: {signed_name}
Date: {signed_date}
Document Version: {version}
"""


def _scope_key(scope: str, project_id: Optional[int] = None) -> str:
    if scope == MASTER_SCOPE:
        return MASTER_SCOPE
    return f"{ADDENDUM_SCOPE}:{project_id}"

def _format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")

def render_master(signed_name: str, signed_at: Optional[datetime] = None) -> str:
    return MASTER_TEMPLATE.format(
        platform=PLATFORM_NAME,
        signed_name=signed_name,
        signed_date=_format_date(signed_at or utcnow()),
        validity_years=NDA_VALIDITY_YEARS,
        version=NDA_VERSION,
    )

def render_addendum(project: Project, signed_name: str, master_signed_at: Optional[datetime] = None,
                    signed_at: Optional[datetime] = None) -> str:
    custom_terms = ""
    if project.nda_custom_terms:
        custom_terms = f"\nADDITIONAL TERMS SPECIFIED BY THE COMPANY:\n{project.nda_custom_terms}\n"
    ip_clauses = ""
    if project.nda_ip_clauses:
        ip_clauses = f"\nINTELLECTUAL PROPERTY PROVISIONS:\n{project.nda_ip_clauses}\n"
    return ADDENDUM_TEMPLATE.format(
        platform=PLATFORM_NAME,
        master_date=_format_date(master_signed_at) if master_signed_at else "[not yet signed]",
        project_title=project.title,
        signed_date=_format_date(signed_at or utcnow()),
        custom_terms=custom_terms,
        ip_clauses=ip_clauses,
        signed_name=signed_name,
        version=NDA_VERSION,
    )

def find_signature(session: Session, signer_id: int, scope: str, project_id: Optional[int] = None) -> Optional[NDASignature]:
    return session.exec(
        select(NDASignature).where(
            NDASignature.signer_id == signer_id,
            NDASignature.scope_key == _scope_key(scope, project_id),
        )
    ).first()

def has_master(session: Session, investor_id: int) -> bool:
    return find_signature(session, investor_id, MASTER_SCOPE) is not None

def has_addendum(session: Session, investor_id: int, project_id: int) -> bool:
    return find_signature(session, investor_id, ADDENDUM_SCOPE, project_id) is not None

def _create_signature(session: Session, signature: NDASignature) -> Tuple[NDASignature, bool]:
    ledger.ensure_account(session, signature.signer_id)
    try:
        with atomic(session):
            ledger.lock_account(session, signature.signer_id)
            session.add(signature)
            session.flush()
            append_event(
                session,
                investor_subject(signature.signer_id),
                user_actor(signature.signer_id),
                "nda_signed",
                {"scope": signature.scope, "project_id": signature.project_id, "document_hash": signature.document_hash},
                ip=signature.ip_address,
                ua=signature.user_agent,
            )
    except IntegrityError:
        existing = find_signature(session, signature.signer_id, signature.scope, signature.project_id)
        if existing is None:
            raise
        return existing, False
    session.refresh(signature)
    logger.info("investor %s signed %s", signature.signer_id, signature.scope_key)
    return signature, True

def sign_master(session: Session, investor_id: int, payload: dict, ip=None, user_agent=None) -> Tuple[NDASignature, bool]:
    existing = find_signature(session, investor_id, MASTER_SCOPE)
    if existing:
        return existing, False
    now = utcnow()
    signed_name = payload.get("signed_name") or ""
    signature = NDASignature(
        signer_id=investor_id,
        scope=MASTER_SCOPE,
        scope_key=_scope_key(MASTER_SCOPE),
        signed_name=signed_name,
        signature_payload=canonical_json(payload),
        document_version=NDA_VERSION,
        document_hash=sha256_bytes(render_master(signed_name, now).encode()),
        ip_address=ip,
        user_agent=user_agent,
        signed_at=now,
    )
    return _create_signature(session, signature)

def sign_addendum(session: Session, investor_id: int, project_id: int, payload: dict, ip=None,
                  user_agent=None) -> Tuple[NDASignature, bool]:
    project = get_project(session, project_id)
    if not is_unlocked(session, investor_id, project_id):
        raise NotUnlocked(project_id=project_id)
    if not project.requires_addendum:
        raise ProjectDoesNotRequireAddendum(project_id=project_id)
    existing = find_signature(session, investor_id, ADDENDUM_SCOPE, project_id)
    if existing:
        return existing, False
    master = find_signature(session, investor_id, MASTER_SCOPE)
    if master is None:
        raise MasterNDARequired()

    now = utcnow()
    signed_name = payload.get("signed_name") or ""
    content = render_addendum(project, signed_name, master.signed_at, now)
    signature = NDASignature(
        signer_id=investor_id,
        scope=ADDENDUM_SCOPE,
        project_id=project_id,
        scope_key=_scope_key(ADDENDUM_SCOPE, project_id),
        signed_name=signed_name,
        signature_payload=canonical_json(payload),
        document_version=NDA_VERSION,
        document_hash=sha256_bytes(content.encode()),
        ip_address=ip,
        user_agent=user_agent,
        signed_at=now,
    )
    return _create_signature(session, signature)

def can_view_sensitive(session: Session, investor_id: int, project_id: int) -> bool:
    # recomputed on every call: unlocks can be revoked by an administrator
    project = get_project(session, project_id)
    if not has_master(session, investor_id):
        return False
    if not is_unlocked(session, investor_id, project_id):
        return False
    return not project.requires_addendum or has_addendum(session, investor_id, project_id)
