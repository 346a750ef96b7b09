from typing import Optional
from datetime import datetime
from sqlalchemy import DateTime, Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field as ORMField
from .utils import utcnow

LIVE_PROJECT_STATUSES = ("approved",)
PROJECT_STATUSES = ("draft", "pending", "approved", "rejected", "funded", "closed")

# every timestamp is written as UTC with its offset
AwareDateTime = DateTime(timezone=True)


class User(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str
    name: str
    role: str = "investor"  # investor|developer|admin
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)

class Project(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    developer_id: int = ORMField(index=True)
    title: str
    tagline: str = ""
    description: str = ""
    category: Optional[str] = None
    min_investment: int = 0  # minor units
    status: str = "draft"
    requires_addendum: bool = True
    nda_custom_terms: Optional[str] = None
    nda_ip_clauses: Optional[str] = None
    # released only through the NDA gate
    problem: Optional[str] = None
    solution: Optional[str] = None
    business_model: Optional[str] = None
    traction: Optional[str] = None
    use_of_funds: Optional[str] = None
    monthly_revenue: Optional[int] = None
    pitch_deck_url: Optional[str] = None
    financial_model_url: Optional[str] = None
    contact_email: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)
    approved_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_PROJECT_STATUSES

class CreditAccount(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(unique=True)
    total_purchased: int = 0
    total_consumed: int = 0
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)

    @property
    def remaining(self) -> int:
        return self.total_purchased - self.total_consumed

class CreditTransaction(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    kind: str  # purchase|consume
    credits: int
    payment_ref: Optional[str] = ORMField(default=None, unique=True)
    balance_after: int = 0
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)

class Unlock(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("investor_id", "project_id", name="uq_unlock_pair"),)

    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    project_id: int
    credit_txn_id: int
    unlocked_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)
    revoked_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    revoked_reason: Optional[str] = None

class NDASignature(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("signer_id", "scope_key", name="uq_nda_scope"),)

    id: Optional[int] = ORMField(default=None, primary_key=True)
    signer_id: int = ORMField(index=True)
    scope: str  # master|addendum
    project_id: Optional[int] = None
    scope_key: str  # "master" or "addendum:<project_id>"
    signed_name: str
    signature_payload: str = "{}"
    document_version: str = "1.0"
    document_hash: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    signed_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)

class Offer(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_offer_active_pair",
            "investor_id",
            "project_id",
            unique=True,
            sqlite_where=text("status NOT IN ('cancelled', 'executed')"),
            postgresql_where=text("status NOT IN ('cancelled', 'executed')"),
        ),
    )

    id: Optional[int] = ORMField(default=None, primary_key=True)
    project_id: int = ORMField(index=True)
    investor_id: int = ORMField(index=True)
    developer_id: int = ORMField(index=True)
    investment_amount: int  # minor units
    currency: str = "usd"
    valuation_cap: Optional[int] = None
    discount_rate: Optional[float] = None
    is_mfn: bool = False
    pro_rata_rights: bool = False
    message: str = ""
    status: str = "draft"
    version: int = 1
    sent_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    investor_signed_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    investor_signed_name: Optional[str] = None
    developer_signed_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    developer_signed_name: Optional[str] = None
    executed_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    cancelled_at: Optional[datetime] = ORMField(default=None, sa_type=AwareDateTime)
    cancelled_by: Optional[int] = None
    cancel_reason: Optional[str] = None
    commission_rate: float = 0.0
    commission_amount: int = 0
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)

class DealEvent(SQLModel, table=True):
    # a second writer that read the same chain head fails here instead of forking the chain
    __table_args__ = (UniqueConstraint("subject", "prev_hash", name="uq_event_chain_link"),)

    id: Optional[int] = ORMField(default=None, primary_key=True)
    subject: str = ORMField(index=True)  # offer:<id>|investor:<id>
    actor: str  # system|admin|user:<id>
    type: str   # purchased|unlocked|revoked|nda_signed|created|sent|signed|executed|cancelled
    meta_json: str = "{}"
    ip: Optional[str] = None
    ua: Optional[str] = None
    at: datetime = ORMField(default_factory=utcnow, sa_type=AwareDateTime)
    prev_hash: Optional[str] = None
    hash: Optional[str] = None
