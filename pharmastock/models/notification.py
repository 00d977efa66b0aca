# FILE: pharmastock/models/notification.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Enum, Index
)

from pharmastock.db.base import Base
from pharmastock.models.inventory import MYSQL_ARGS
from pharmastock.utils.timezone import now_local


class NotificationType(str, enum.Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    EXPIRED = "EXPIRED"
    NEAR_EXPIRY = "NEAR_EXPIRY"


class NotificationSeverity(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_open", "notification_type", "entity_name", "entity_id", "is_read"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    notification_type = Column(Enum(NotificationType, name="notification_type"), nullable=False)
    severity = Column(Enum(NotificationSeverity, name="notification_severity"), nullable=False)
    message = Column(String(500), nullable=False)

    entity_name = Column(String(50), nullable=False, default="Batch")
    entity_id = Column(Integer, nullable=False)

    expires_at = Column(DateTime, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
