# FILE: pharmastock/models/idempotency.py
from __future__ import annotations

import enum

from sqlalchemy import Column, String, DateTime, Enum, JSON

from pharmastock.db.base import Base
from pharmastock.models.inventory import MYSQL_ARGS
from pharmastock.utils.timezone import now_local


class IdempotencyStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class IdempotencyRecord(Base):
    """
    One row per request fingerprint. The primary key insert is the
    cross-request lock: whoever inserts first executes the request.
    """
    __tablename__ = "idempotency_records"
    __table_args__ = (MYSQL_ARGS, )

    fingerprint = Column(String(64), primary_key=True)
    status = Column(Enum(IdempotencyStatus, name="idempotency_status"), nullable=False)
    response = Column(JSON, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
