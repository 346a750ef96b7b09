from typing import Optional
from fastapi import Depends, Header, HTTPException, Query, status
from itsdangerous import BadSignature
from pydantic import BaseModel

from .config import ADMIN_ACCESS_TOKEN
from .errors import RoleMismatch
from .models import User
from .utils import make_token, read_token


class Caller(BaseModel):
    role: str
    user_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def issue_token(user: User) -> str:
    return make_token({"user_id": user.id, "role": user.role})


def resolve_caller(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    token: Optional[str] = Query(default=None),
) -> Caller:
    candidate = x_access_token or token
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing access token")
    if ADMIN_ACCESS_TOKEN and candidate == ADMIN_ACCESS_TOKEN:
        return Caller(role="admin")
    try:
        data = read_token(candidate)
    except BadSignature:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid access token")
    if not isinstance(data, dict) or data.get("user_id") is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid access token")
    return Caller(role=data.get("role") or "investor", user_id=data["user_id"])


def require_admin(caller: Caller = Depends(resolve_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return caller


def ensure_acting_as(caller: Caller, user_id: int):
    """The id named in a request body must be the authenticated caller's own."""
    if caller.is_admin:
        return
    if caller.user_id != user_id:
        raise RoleMismatch("caller cannot act for another user", user_id=user_id)
