# FILE: pharmastock/services/notifications.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pharmastock.core.errors import NotFound
from pharmastock.models.notification import (
    Notification,
    NotificationType,
    NotificationSeverity,
)
from pharmastock.schemas.common import page_meta
from pharmastock.schemas.notifications import (
    NotificationOut,
    NotificationListOut,
    NotificationCountsOut,
)
from pharmastock.utils.timezone import now_local


def list_notifications(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    ntype: Optional[NotificationType] = None,
    severity: Optional[NotificationSeverity] = None,
    is_read: Optional[bool] = None,
) -> NotificationListOut:
    q = db.query(Notification)
    if ntype:
        q = q.filter(Notification.notification_type == ntype)
    if severity:
        q = q.filter(Notification.severity == severity)
    if is_read is not None:
        q = q.filter(Notification.is_read.is_(is_read))

    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return NotificationListOut(
        items=[NotificationOut.model_validate(r) for r in rows],
        pagination=page_meta(page, limit, total),
    )


def notification_counts(db: Session) -> NotificationCountsOut:
    total = db.query(func.count(Notification.id)).scalar() or 0
    unread = db.query(func.count(Notification.id)).filter(Notification.is_read.is_(False)).scalar() or 0

    by_severity = {s: 0 for s in NotificationSeverity}
    for sev, cnt in db.query(Notification.severity, func.count(Notification.id)).group_by(Notification.severity):
        by_severity[NotificationSeverity(sev)] = int(cnt)

    by_type = {t: 0 for t in NotificationType}
    for nt, cnt in db.query(Notification.notification_type, func.count(Notification.id)).group_by(Notification.notification_type):
        by_type[NotificationType(nt)] = int(cnt)

    return NotificationCountsOut(total=total, unread=unread, by_severity=by_severity, by_type=by_type)


def mark_as_read(db: Session, notification_id: int) -> Notification:
    n = db.query(Notification).filter(Notification.id == notification_id).first()
    if not n:
        raise NotFound(f"Notification with ID {notification_id} not found",
                       details={"notification_id": notification_id})
    if not n.is_read:
        n.is_read = True
        n.read_at = now_local()
        db.flush()
    return n


def mark_all_as_read(db: Session) -> int:
    return (
        db.query(Notification)
        .filter(Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": now_local()}, synchronize_session=False)
    )
