# FILE: pharmastock/services/sales_reports.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from pharmastock.core.errors import ValidationError
from pharmastock.models.inventory import Batch, Drug
from pharmastock.models.sales import Sale, SaleLine, SaleStatus
from pharmastock.schemas.common import page_meta
from pharmastock.schemas.sales import (
    PeriodType,
    ProductSalesRowOut,
    ProductSalesSummaryOut,
)
from pharmastock.utils.timezone import today_local

ZERO = Decimal("0")
CENT = Decimal("0.01")


def _money(v) -> Decimal:
    if v is None:
        return ZERO
    return Decimal(str(v)).quantize(CENT, rounding=ROUND_HALF_UP)


def period_range(
    period: PeriodType,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Inclusive [start, end] dates for a reporting period. Weeks start on Monday."""
    today = today or today_local()

    if period == PeriodType.DAILY:
        return today, today
    if period == PeriodType.WEEKLY:
        return today - timedelta(days=today.weekday()), today
    if period == PeriodType.MONTHLY:
        start = today.replace(day=1)
        nxt = (start + timedelta(days=32)).replace(day=1)
        return start, nxt - timedelta(days=1)
    if period == PeriodType.YEARLY:
        return date(today.year, 1, 1), date(today.year, 12, 31)

    if not start_date or not end_date:
        raise ValidationError("start_date and end_date are required for custom period")
    if start_date > end_date:
        raise ValidationError("start_date cannot be after end_date",
                              details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()})
    return start_date, end_date


def product_sales_summary(
    db: Session,
    *,
    period: PeriodType = PeriodType.DAILY,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
    today: Optional[date] = None,
) -> ProductSalesSummaryOut:
    """
    Quantity, revenue and profit per drug over APPROVED sales decided in the
    period. Revenue always uses the line's price snapshot, never the batch's
    current price.
    """
    start, end = period_range(period, start_date, end_date, today)
    start_dt = datetime.combine(start, time.min)
    end_dt = datetime.combine(end + timedelta(days=1), time.min)

    qty = func.sum(SaleLine.quantity)
    revenue = func.sum(SaleLine.quantity * SaleLine.unit_price_snapshot)
    cost = func.sum(SaleLine.quantity * Batch.unit_cost)

    rows = (
        db.query(
            Drug.id.label("drug_id"),
            Drug.generic_name,
            Drug.trade_name,
            Drug.sku,
            qty.label("qty"),
            revenue.label("revenue"),
            cost.label("cost"),
        )
        .select_from(SaleLine)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .join(Batch, Batch.id == SaleLine.batch_id)
        .join(Drug, Drug.id == Batch.drug_id)
        .filter(
            Sale.status == SaleStatus.APPROVED,
            Sale.decided_at >= start_dt,
            Sale.decided_at < end_dt,
        )
        .group_by(Drug.id, Drug.generic_name, Drug.trade_name, Drug.sku)
        .all()
    )

    products = []
    for r in rows:
        total_qty = int(r.qty or 0)
        rev = _money(r.revenue)
        products.append(
            ProductSalesRowOut(
                drug_id=r.drug_id,
                drug_name=f"{r.generic_name} ({r.trade_name})" if r.trade_name else r.generic_name,
                sku=r.sku,
                total_quantity=total_qty,
                total_revenue=rev,
                total_profit=_money(Decimal(str(r.revenue or 0)) - Decimal(str(r.cost or 0))),
                avg_unit_price=_money(rev / total_qty) if total_qty else ZERO,
            ))

    # most sold first, name as tie-breaker
    products.sort(key=lambda p: (-p.total_quantity, p.drug_name))

    offset = (page - 1) * limit
    return ProductSalesSummaryOut(
        period=period,
        start_date=start,
        end_date=end,
        number_of_products_sold=len(products),
        total_quantity_sold=sum(p.total_quantity for p in products),
        most_sold_item=products[0].drug_name if products else None,
        total_revenue=_money(sum((p.total_revenue for p in products), ZERO)),
        total_profit=_money(sum((p.total_profit for p in products), ZERO)),
        products=products[offset:offset + limit],
        pagination=page_meta(page, limit, len(products)),
    )
