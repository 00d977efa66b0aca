# FILE: pharmastock/schemas/sales.py
from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from pharmastock.models.sales import SaleStatus
from pharmastock.schemas.common import PageMeta


# -------------------------
# INPUT
# -------------------------
class SaleItemIn(BaseModel):
    batch_id: int
    quantity: int = Field(..., gt=0)
    line_notes: Optional[str] = Field(None, max_length=500)


class SaleCreateIn(BaseModel):
    notes: Optional[str] = None
    items: List[SaleItemIn] = Field(..., min_length=1)


class ApproveSaleIn(BaseModel):
    notes: Optional[str] = None


class DeclineSaleIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


# -------------------------
# OUTPUT
# -------------------------
class SaleLineOut(BaseModel):
    id: int
    batch_id: int
    quantity: int
    unit_price_snapshot: Decimal
    line_total: Decimal
    line_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SaleOut(BaseModel):
    id: int
    status: SaleStatus
    notes: Optional[str] = None
    created_by: int
    decided_by: Optional[int] = None
    decision_reason: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    total_amount: Decimal
    lines: List[SaleLineOut] = []

    model_config = ConfigDict(from_attributes=True)


class SaleListOut(BaseModel):
    items: List[SaleOut]
    pagination: PageMeta


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class ProductSalesRowOut(BaseModel):
    drug_id: int
    drug_name: str
    sku: str
    total_quantity: int
    total_revenue: Decimal
    total_profit: Decimal
    avg_unit_price: Decimal


class ProductSalesSummaryOut(BaseModel):
    period: PeriodType
    start_date: date
    end_date: date
    number_of_products_sold: int
    total_quantity_sold: int
    most_sold_item: Optional[str] = None
    total_revenue: Decimal
    total_profit: Decimal
    products: List[ProductSalesRowOut]
    pagination: PageMeta
