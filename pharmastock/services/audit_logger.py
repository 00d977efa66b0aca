import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from pharmastock.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    session_factory: sessionmaker,
    *,
    action: str,  # "CREATE" | "UPDATE" | "DELETE"
    entity_name: str,
    entity_id: int,
    actor_id: Optional[int],
    summary: Optional[str] = None,
) -> bool:
    """
    Persist one audit event in its own session.

    Called after the business transaction has committed, so a failure here
    is reported to operators through the log and never undoes the business
    change. Returns False when the row could not be written.
    """
    db = session_factory()
    try:
        db.add(
            AuditLog(
                user_id=actor_id,
                action=action,
                entity_name=entity_name,
                entity_id=entity_id,
                change_summary=summary,
            ))
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("Failed to write audit log action=%s %s#%s actor=%s",
                         action, entity_name, entity_id, actor_id)
        return False
    finally:
        db.close()
