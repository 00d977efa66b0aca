# FILE: pharmastock/models/inventory.py
from __future__ import annotations

from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from pharmastock.db.base import Base
from pharmastock.utils.timezone import now_local

Money = Numeric(14, 2)

MYSQL_ARGS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class Drug(Base):
    """
    Reference row only: drug master CRUD lives in the catalog service.
    """
    __tablename__ = "drugs"
    __table_args__ = (MYSQL_ARGS, )

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    generic_name = Column(String(255), nullable=False)
    trade_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)

    batches = relationship("Batch", back_populates="drug")

    @property
    def display_name(self) -> str:
        if self.trade_name:
            return f"{self.generic_name} ({self.trade_name})"
        return self.generic_name


class Batch(Base):
    """
    A purchased lot of a drug.

    Quantities are owned by the batch ledger:
      available = on_hand_qty - reserved_qty
    reserved_qty is stock held by PENDING sales; it only becomes a real
    deduction when the sale is approved.
    """
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("on_hand_qty >= 0", name="ck_batches_on_hand_nonneg"),
        CheckConstraint("reserved_qty >= 0", name="ck_batches_reserved_nonneg"),
        CheckConstraint("reserved_qty <= on_hand_qty", name="ck_batches_reserved_le_on_hand"),
        Index("ix_batches_drug_expiry", "drug_id", "expiry_date"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    drug_id = Column(Integer, ForeignKey("drugs.id"), nullable=False, index=True)
    batch_number = Column(String(100), nullable=True)

    on_hand_qty = Column(Integer, nullable=False, default=0)
    reserved_qty = Column(Integer, nullable=False, default=0)

    unit_price = Column(Money, nullable=False, default=Decimal("0"))
    unit_cost = Column(Money, nullable=False, default=Decimal("0"))
    expiry_date = Column(Date, nullable=False, index=True)

    # NULL -> general config default
    low_stock_threshold = Column(Integer, nullable=True)

    # bumped on every ledger mutation
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    drug = relationship("Drug", back_populates="batches")
    sale_lines = relationship("SaleLine", back_populates="batch")

    @property
    def available_qty(self) -> int:
        return int(self.on_hand_qty or 0) - int(self.reserved_qty or 0)

    @property
    def label(self) -> str:
        return f"#{self.batch_number}" if self.batch_number else f"#{self.id}"
