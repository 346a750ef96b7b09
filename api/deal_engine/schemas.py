from pydantic import BaseModel, Field
from typing import Literal, Optional

class UserCreate(BaseModel):
    email: str
    name: str
    role: Literal["investor", "developer", "admin"] = "investor"

class ProjectCreate(BaseModel):
    developer_id: Optional[int] = None
    title: str
    tagline: str = ""
    description: str = ""
    category: Optional[str] = None
    min_investment: int = 0
    requires_addendum: bool = True
    problem: Optional[str] = None
    solution: Optional[str] = None
    business_model: Optional[str] = None
    traction: Optional[str] = None
    use_of_funds: Optional[str] = None
    monthly_revenue: Optional[int] = None
    pitch_deck_url: Optional[str] = None
    financial_model_url: Optional[str] = None
    contact_email: Optional[str] = None

class ProjectStatusUpdate(BaseModel):
    status: Literal["draft", "pending", "approved", "rejected", "funded", "closed"]

class ProjectNDAConfig(BaseModel):
    requires_addendum: bool = True
    custom_terms: Optional[str] = None
    ip_clauses: Optional[str] = None

class PurchaseRequest(BaseModel):
    investor_id: int
    credits: int
    payment_ref: str = Field(min_length=1)

class UnlockRequest(BaseModel):
    investor_id: int
    project_id: int

class UnlockRevoke(BaseModel):
    investor_id: int
    project_id: int
    reason: str = Field(min_length=1)

class SignaturePayload(BaseModel):
    # opaque to the engine beyond the signer's typed name
    signed_name: str
    consent_text: Optional[str] = None
    signature_data: Optional[str] = None
    agreed_to_terms: bool = True

class MasterNDASign(BaseModel):
    investor_id: int
    payload: SignaturePayload

class AddendumSign(BaseModel):
    investor_id: int
    project_id: int
    payload: SignaturePayload

class OfferCreate(BaseModel):
    investor_id: int
    project_id: int
    investment_amount: int
    valuation_cap: Optional[int] = None
    discount_rate: Optional[float] = None
    is_mfn: bool = False
    pro_rata_rights: bool = False
    message: str = ""
    send: bool = True

class OfferAction(BaseModel):
    actor_id: int

class OfferSign(BaseModel):
    actor_id: int
    as_role: Optional[str] = None
    signed_name: Optional[str] = None

class OfferCancel(BaseModel):
    actor_id: int
    reason: str = ""
