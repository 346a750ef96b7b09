import logging
from contextlib import contextmanager
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import text, inspect
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=connect_args)

def init_db():
    from .models import User, Project, CreditAccount, CreditTransaction, Unlock, NDASignature, Offer, DealEvent
    SQLModel.metadata.create_all(engine)
    _ensure_unlock_revocation_columns()

def get_session():
    with Session(engine) as session:
        yield session

@contextmanager
def atomic(session: Session):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise

def _ensure_unlock_revocation_columns():
    inspector = inspect(engine)
    try:
        columns = [col["name"] for col in inspector.get_columns("unlock")]
    except Exception:
        return
    missing = [name for name in ("revoked_at", "revoked_reason") if name not in columns]
    if not missing:
        return
    with engine.begin() as conn:
        if "revoked_at" in missing:
            conn.execute(text("ALTER TABLE unlock ADD COLUMN revoked_at TIMESTAMP WITH TIME ZONE"))
        if "revoked_reason" in missing:
            conn.execute(text("ALTER TABLE unlock ADD COLUMN revoked_reason TEXT"))
    logger.warning("added unlock revocation columns: %s", ", ".join(missing))
