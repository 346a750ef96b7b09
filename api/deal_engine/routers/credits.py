from fastapi import APIRouter, Depends
from sqlmodel import Session
from .. import ledger
from ..auth import Caller, ensure_acting_as, require_admin, resolve_caller
from ..db import get_session
from ..models import CreditTransaction
from ..schemas import PurchaseRequest

router = APIRouter()

def _serialize_transaction(txn: CreditTransaction):
    return {
        "id": txn.id,
        "kind": txn.kind,
        "credits": txn.credits,
        "payment_ref": txn.payment_ref,
        "balance_after": txn.balance_after,
        "created_at": txn.created_at,
    }

@router.post("/purchase")
def purchase_credits(
    payload: PurchaseRequest,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin),
):
    # credits are granted only by the payment-capture service
    result = ledger.purchase(session, payload.investor_id, payload.credits, payload.payment_ref)
    return {
        "remaining": result.remaining,
        "transaction_id": result.transaction.id,
        "duplicate": result.duplicate,
    }

@router.get("/credits/{investor_id}")
def credit_balance(
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    account = ledger.get_account(session, investor_id)
    if account is None:
        return {"investor_id": investor_id, "total_purchased": 0, "total_consumed": 0, "remaining": 0}
    return {
        "investor_id": investor_id,
        "total_purchased": account.total_purchased,
        "total_consumed": account.total_consumed,
        "remaining": account.remaining,
    }

@router.get("/credits/{investor_id}/transactions")
def credit_transactions(
    investor_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    ensure_acting_as(caller, investor_id)
    return [_serialize_transaction(t) for t in ledger.list_transactions(session, investor_id)]
