# FILE: pharmastock/services/notification_trigger.py
from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload, sessionmaker

from pharmastock.models.inventory import Batch
from pharmastock.models.notification import (
    Notification,
    NotificationType,
    NotificationSeverity,
)
from pharmastock.services.system_config import (
    default_low_stock_threshold,
    expiry_warning_days,
)
from pharmastock.utils.timezone import now_local

logger = logging.getLogger(__name__)

ENTITY_BATCH = "Batch"


def _describe(batch: Batch) -> str:
    drug = batch.drug.display_name if batch.drug else f"drug {batch.drug_id}"
    return f"Batch {batch.label} ({drug})"


def low_stock_threshold_for(db: Session, batch: Batch) -> int:
    if batch.low_stock_threshold is not None:
        return int(batch.low_stock_threshold)
    return default_low_stock_threshold(db)


def _open_notification_q(db: Session, ntype: NotificationType, entity_name: str, entity_id: int, now: datetime):
    return db.query(Notification).filter(
        Notification.notification_type == ntype,
        Notification.entity_name == entity_name,
        Notification.entity_id == entity_id,
        Notification.is_read.is_(False),
        or_(Notification.expires_at.is_(None), Notification.expires_at > now),
    )


def create_if_not_exists(
    db: Session,
    *,
    ntype: NotificationType,
    severity: NotificationSeverity,
    message: str,
    entity_id: int,
    entity_name: str = ENTITY_BATCH,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Optional[Notification]:
    """
    Insert a notification unless an unread, unexpired one with the same
    (type, entity) is already open. Returns None when skipped.
    """
    now = now or now_local()
    if _open_notification_q(db, ntype, entity_name, entity_id, now).first():
        return None

    n = Notification(
        notification_type=ntype,
        severity=severity,
        message=message,
        entity_name=entity_name,
        entity_id=entity_id,
        expires_at=expires_at,
        is_read=False,
        created_at=now,
    )
    db.add(n)
    db.flush()
    return n


def _resolve_open(db: Session, ntype: NotificationType, entity_id: int, now: datetime) -> int:
    return (
        _open_notification_q(db, ntype, ENTITY_BATCH, entity_id, now)
        .update({"is_read": True, "read_at": now}, synchronize_session=False)
    )


def evaluate_batch(db: Session, batch_id: int, now: Optional[datetime] = None) -> List[Notification]:
    """
    Inspect one batch after a stock movement and raise at most one stock
    notification and one expiry notification:

      available == 0                  -> OUT_OF_STOCK  HIGH
      0 < available <= threshold      -> LOW_STOCK     MEDIUM
      expiry < today                  -> EXPIRED       HIGH
      today <= expiry < today + days  -> NEAR_EXPIRY   LOW

    Stock notifications that no longer apply are marked read.
    """
    now = now or now_local()
    today = now.date()

    batch = (
        db.query(Batch)
        .options(selectinload(Batch.drug))
        .filter(Batch.id == batch_id)
        .populate_existing()
        .first()
    )
    if not batch:
        return []

    created: List[Notification] = []
    available = batch.available_qty
    threshold = low_stock_threshold_for(db, batch)

    if available <= 0:
        n = create_if_not_exists(
            db,
            ntype=NotificationType.OUT_OF_STOCK,
            severity=NotificationSeverity.HIGH,
            message=f"{_describe(batch)} is out of stock",
            entity_id=batch.id,
            now=now,
        )
        if n:
            created.append(n)
    elif available <= threshold:
        n = create_if_not_exists(
            db,
            ntype=NotificationType.LOW_STOCK,
            severity=NotificationSeverity.MEDIUM,
            message=f"{_describe(batch)} is running low on stock ({available} remaining)",
            entity_id=batch.id,
            now=now,
        )
        if n:
            created.append(n)

    if available > threshold:
        _resolve_open(db, NotificationType.LOW_STOCK, batch.id, now)
    if available > 0:
        _resolve_open(db, NotificationType.OUT_OF_STOCK, batch.id, now)

    warn_days = expiry_warning_days(db)
    expiry = batch.expiry_date
    if expiry is not None:
        if expiry < today:
            n = create_if_not_exists(
                db,
                ntype=NotificationType.EXPIRED,
                severity=NotificationSeverity.HIGH,
                message=f"{_describe(batch)} expired on {expiry.isoformat()}",
                entity_id=batch.id,
                now=now,
            )
            if n:
                created.append(n)
        elif expiry < today + timedelta(days=warn_days):
            days_left = (expiry - today).days
            n = create_if_not_exists(
                db,
                ntype=NotificationType.NEAR_EXPIRY,
                severity=NotificationSeverity.LOW,
                message=f"{_describe(batch)} expires in {days_left} day{'s' if days_left != 1 else ''}",
                entity_id=batch.id,
                expires_at=datetime.combine(expiry, time.min),
                now=now,
            )
            if n:
                created.append(n)

    return created


def evaluate_batches_after_commit(session_factory: sessionmaker, batch_ids: Iterable[int]) -> int:
    """
    Post-commit hook used by the sales workflow. Each batch is evaluated in
    its own short transaction; failures are logged and never propagate.
    Returns the number of notifications created.
    """
    created = 0
    for batch_id in sorted(set(batch_ids)):
        db = session_factory()
        try:
            with db.begin():
                created += len(evaluate_batch(db, batch_id))
        except Exception:
            logger.exception("Stock notification evaluation failed batch_id=%s", batch_id)
        finally:
            db.close()
    return created


def scan_expiry(db: Session, now: Optional[datetime] = None) -> int:
    """
    Full expiry sweep over all batches (run on startup and on demand):
    near-expiry warnings inside the warning window, expired warnings only
    for batches that still hold stock.
    """
    now = now or now_local()
    today = now.date()
    warn_until = today + timedelta(days=expiry_warning_days(db))

    created = 0
    near = (
        db.query(Batch)
        .options(selectinload(Batch.drug))
        .filter(Batch.expiry_date >= today, Batch.expiry_date < warn_until)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )
    for b in near:
        days_left = (b.expiry_date - today).days
        if create_if_not_exists(
            db,
            ntype=NotificationType.NEAR_EXPIRY,
            severity=NotificationSeverity.LOW,
            message=f"{_describe(b)} expires in {days_left} day{'s' if days_left != 1 else ''}",
            entity_id=b.id,
            expires_at=datetime.combine(b.expiry_date, time.min),
            now=now,
        ):
            created += 1

    expired = (
        db.query(Batch)
        .options(selectinload(Batch.drug))
        .filter(Batch.expiry_date < today, Batch.on_hand_qty > 0)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )
    for b in expired:
        if create_if_not_exists(
            db,
            ntype=NotificationType.EXPIRED,
            severity=NotificationSeverity.HIGH,
            message=f"{_describe(b)} expired on {b.expiry_date.isoformat()}",
            entity_id=b.id,
            now=now,
        ):
            created += 1

    logger.info("Expiry scan on %s: %s batches near expiry, %s expired with stock, %s new notifications",
                today.isoformat(), len(near), len(expired), created)
    return created
