# pharmastock/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session, sessionmaker

from pharmastock.core.errors import Unauthorized
from pharmastock.core.rbac import Actor
from pharmastock.db.session import SessionLocal
from pharmastock.utils.jwt import decode_token


# =========================================================
# DB
# =========================================================
def get_session_factory() -> sessionmaker:
    """Workflow operations open (and retry) their own transactions."""
    return SessionLocal


def get_db(factory: sessionmaker = Depends(get_session_factory)) -> Generator[Session, None, None]:
    db = factory()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def current_actor(authorization: Optional[str] = Header(None)) -> Actor:
    raw = _extract_bearer(authorization)
    if not raw:
        raise Unauthorized("Missing token")

    payload = decode_token(raw)
    if payload is None:
        raise Unauthorized("Invalid token")

    sub = payload.get("sub")
    role = (payload.get("role") or "").strip().upper()
    if not sub or not role:
        raise Unauthorized("Invalid token payload")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token subject")

    return Actor(id=user_id, role=role, username=payload.get("username") or "")
