# FILE: pharmastock/models/sales.py
from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric,
    ForeignKey, Enum, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from pharmastock.db.base import Base
from pharmastock.models.inventory import MYSQL_ARGS
from pharmastock.utils.timezone import now_local

Money = Numeric(14, 2)


class SaleStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class Sale(Base):
    """
    Seller raises a sale (stock reserved) -> manager approves (stock
    deducted) or declines (reservation released). Both decisions are final.
    """
    __tablename__ = "sales"
    __table_args__ = (
        Index("ix_sales_status_created", "status", "created_at"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    status = Column(Enum(SaleStatus, name="sale_status"), nullable=False, default=SaleStatus.PENDING)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, nullable=False, index=True)
    decided_by = Column(Integer, nullable=True)
    decision_reason = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    lines = relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )

    @property
    def total_amount(self) -> Decimal:
        return sum((ln.line_total for ln in self.lines), Decimal("0"))


class SaleLine(Base):
    __tablename__ = "sale_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_pos"),
        Index("ix_sale_lines_batch", "batch_id"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    # batch.unit_price at creation time; never rewritten
    unit_price_snapshot = Column(Money, nullable=False)
    line_notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)

    sale = relationship("Sale", back_populates="lines")
    batch = relationship("Batch", back_populates="sale_lines")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price_snapshot or 0) * int(self.quantity or 0)
