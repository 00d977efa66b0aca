# FILE: pharmastock/api/routes_notifications.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmastock.api.deps import get_db, current_actor
from pharmastock.core.errors import SalesError
from pharmastock.core.rbac import (
    Actor,
    NOTIFICATION_MANAGE_ROLES,
    NOTIFICATION_VIEW_ROLES,
    require_any_role,
)
from pharmastock.models.notification import NotificationSeverity, NotificationType
from pharmastock.schemas.notifications import ExpiryScanOut, NotificationOut
from pharmastock.services.notification_trigger import scan_expiry
from pharmastock.services.notifications import (
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    notification_counts,
)
from pharmastock.utils.resp import ok, err

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


def _sales_err(e: SalesError):
    return err(e.msg, e.status_code, code=e.code, details=e.details)


@router.get("")
def list_notifications_api(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    notification_type: Optional[NotificationType] = Query(None),
    severity: Optional[NotificationSeverity] = Query(None),
    is_read: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, NOTIFICATION_VIEW_ROLES)
        out = list_notifications(
            db,
            page=page,
            limit=limit,
            ntype=notification_type,
            severity=severity,
            is_read=is_read,
        )
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in list_notifications_api")
        return err("Internal server error", 500)


@router.get("/counts")
def notification_counts_api(
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, NOTIFICATION_VIEW_ROLES)
        return ok(notification_counts(db).model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in notification_counts_api")
        return err("Internal server error", 500)


@router.patch("/read-all")
def mark_all_read_api(
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, NOTIFICATION_VIEW_ROLES)
        with db.begin():
            updated = mark_all_as_read(db)
        logger.info("User %s marked %s notification(s) read", actor.id, updated)
        return ok({"updated": updated})
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in mark_all_read_api")
        return err("Internal server error", 500)


@router.patch("/{notification_id}/read")
def mark_read_api(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, NOTIFICATION_VIEW_ROLES)
        with db.begin():
            n = mark_as_read(db, notification_id)
            out = NotificationOut.model_validate(n)
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in mark_read_api notification_id=%s", notification_id)
        return err("Internal server error", 500)


@router.post("/expiry-scan")
def expiry_scan_api(
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, NOTIFICATION_MANAGE_ROLES)
        with db.begin():
            created = scan_expiry(db)
        return ok(ExpiryScanOut(created=created).model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in expiry_scan_api")
        return err("Internal server error", 500)
