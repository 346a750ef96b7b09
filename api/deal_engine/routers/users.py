from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..auth import Caller, issue_token, require_admin, resolve_caller
from ..db import get_session
from ..errors import NotFound
from ..models import User
from ..schemas import UserCreate

router = APIRouter()

def _serialize_user(user: User):
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "created_at": user.created_at,
    }

@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin),
):
    user = User(email=payload.email, name=payload.name, role=payload.role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return {**_serialize_user(user), "access_token": issue_token(user)}

@router.get("/me")
def current_user(
    session: Session = Depends(get_session),
    caller: Caller = Depends(resolve_caller),
):
    if caller.is_admin:
        return {"id": None, "role": "admin"}
    user = session.get(User, caller.user_id)
    if not user:
        raise NotFound("user not found", user_id=caller.user_id)
    return _serialize_user(user)
