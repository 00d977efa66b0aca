# FILE: pharmastock/schemas/notifications.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from pharmastock.models.notification import NotificationType, NotificationSeverity
from pharmastock.schemas.common import PageMeta


class NotificationOut(BaseModel):
    id: int
    notification_type: NotificationType
    severity: NotificationSeverity
    message: str
    entity_name: str
    entity_id: int
    expires_at: Optional[datetime] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListOut(BaseModel):
    items: List[NotificationOut]
    pagination: PageMeta


class NotificationCountsOut(BaseModel):
    total: int
    unread: int
    by_severity: Dict[NotificationSeverity, int]
    by_type: Dict[NotificationType, int]


class ExpiryScanOut(BaseModel):
    created: int
