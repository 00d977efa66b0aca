# pharmastock/utils/jwt.py
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError

from pharmastock.core.config import settings


def create_access_token(
    *,
    user_id: int,
    role: str,
    username: str = "",
    expires_delta: timedelta = timedelta(hours=8),
) -> str:
    """
    Tokens are issued by the auth service; this is used by scripts and tests.
    """
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),
        "role": role,
        "username": username,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(raw_token: str) -> Optional[dict]:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
