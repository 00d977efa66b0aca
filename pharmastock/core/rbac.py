from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from pharmastock.core.errors import Forbidden


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    PHARMACIST = "PHARMACIST"
    SELLER = "SELLER"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as decoded from the bearer token."""
    id: int
    role: str
    username: str = ""


SALE_CREATE_ROLES = (UserRole.PHARMACIST, UserRole.SELLER, UserRole.MANAGER, UserRole.ADMIN)
SALE_DECIDE_ROLES = (UserRole.MANAGER, UserRole.ADMIN)
SALE_VIEW_ROLES = (UserRole.PHARMACIST, UserRole.SELLER, UserRole.MANAGER, UserRole.ADMIN)
NOTIFICATION_VIEW_ROLES = (UserRole.PHARMACIST, UserRole.SELLER, UserRole.MANAGER, UserRole.ADMIN)
NOTIFICATION_MANAGE_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


def _code(x: Any) -> str:
    """
    Normalize a role safely.
    Supports:
      - Enum -> enum.value
      - str  -> str
      - object with .role -> str/Enum
    """
    if x is None:
        return ""

    if isinstance(x, Enum):
        return str(x.value)

    if isinstance(x, str):
        return x

    if hasattr(x, "role"):
        return _code(getattr(x, "role"))

    return str(x)


def is_admin_user(actor: Any) -> bool:
    if not actor:
        return False
    return _code(actor).strip().upper() in {"ADMIN", "SUPER_ADMIN"}


def require_any_role(actor: Any, allowed: Iterable[Any], *, message: Optional[str] = None) -> None:
    """
    Raise Forbidden if the actor's role is not in 'allowed'.
    """
    if is_admin_user(actor):
        return

    allowed_set = {_code(x).strip().upper() for x in allowed if _code(x).strip()}
    if not allowed_set:
        return

    if _code(actor).strip().upper() in allowed_set:
        return

    raise Forbidden(
        message or "You do not have permission to perform this action.",
        details={"role": _code(actor), "allowed": sorted(allowed_set)},
    )
