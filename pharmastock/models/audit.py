from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Index,
)

from pharmastock.db.base import Base
from pharmastock.models.inventory import MYSQL_ARGS
from pharmastock.utils.timezone import now_local


class AuditLog(Base):
    """
    Append-only audit trail.
    Every sale create / approve / decline writes here.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_name", "entity_id"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, nullable=True)  # system jobs may be null
    action = Column(String(20), nullable=False)  # CREATE / UPDATE / DELETE

    entity_name = Column(String(100), nullable=False)
    entity_id = Column(Integer, nullable=False)

    change_summary = Column(Text, nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
