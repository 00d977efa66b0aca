# FILE: pharmastock/api/routes_sales.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session, sessionmaker

from pharmastock.api.deps import get_db, get_session_factory, current_actor
from pharmastock.core.config import settings
from pharmastock.core.errors import SalesError, ValidationError
from pharmastock.core.rbac import (
    Actor,
    SALE_CREATE_ROLES,
    SALE_DECIDE_ROLES,
    SALE_VIEW_ROLES,
    require_any_role,
)
from pharmastock.models.sales import SaleStatus
from pharmastock.schemas.sales import (
    SaleCreateIn,
    ApproveSaleIn,
    DeclineSaleIn,
    PeriodType,
)
from pharmastock.services.idempotency import make_fingerprint, run_idempotent
from pharmastock.services.sales_reports import product_sales_summary
from pharmastock.services.sales_workflow import (
    create_sale,
    approve_sale,
    decline_sale,
    get_sale,
    list_sales,
)
from pharmastock.utils.resp import ok, err

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sales", tags=["sales"])


def _sales_err(e: SalesError):
    return err(e.msg, e.status_code, code=e.code, details=e.details)


def _parse_status(raw: Optional[str]) -> Optional[SaleStatus]:
    s = (raw or "").strip().upper()
    if not s or s == "ALL":
        return None
    try:
        return SaleStatus(s)
    except ValueError:
        raise ValidationError(f"Unknown sale status '{raw}'",
                              details={"allowed": [x.value for x in SaleStatus] + ["all"]})


# =========================
# CREATE
# =========================
@router.post("")
def create_sale_api(
    payload: SaleCreateIn,
    idempotency_key: Optional[str] = Header(None),
    factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_CREATE_ROLES)

        fingerprint = make_fingerprint(
            idempotency_key=idempotency_key,
            actor_id=actor.id,
            method="POST",
            path="/sales",
            payload=payload.model_dump(mode="json"),
        )
        ttl = settings.IDEMPOTENCY_TTL_SECONDS if idempotency_key else settings.IDEMPOTENCY_REPLAY_WINDOW_SECONDS

        data = run_idempotent(
            factory,
            fingerprint,
            lambda: create_sale(factory, payload, actor).model_dump(mode="json"),
            ttl_seconds=ttl,
        )
        return ok(data, status_code=201)
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unexpected error in create_sale_api user_id=%s", actor.id)
        return err("Internal server error", 500)


# =========================
# DECISIONS
# =========================
@router.post("/{sale_id}/approve")
def approve_sale_api(
    sale_id: int,
    payload: Optional[ApproveSaleIn] = None,
    factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_DECIDE_ROLES)
        out = approve_sale(factory, sale_id, actor, notes=payload.notes if payload else None)
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        logger.info("approve_sale failed sale_id=%s user_id=%s code=%s msg=%s",
                    sale_id, actor.id, e.code, e.msg)
        return _sales_err(e)
    except Exception:
        logger.exception("Unexpected error in approve_sale_api sale_id=%s", sale_id)
        return err("Internal server error", 500)


@router.post("/{sale_id}/decline")
def decline_sale_api(
    sale_id: int,
    payload: DeclineSaleIn,
    factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_DECIDE_ROLES)
        out = decline_sale(factory, sale_id, actor, payload.reason)
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        logger.info("decline_sale failed sale_id=%s user_id=%s code=%s msg=%s",
                    sale_id, actor.id, e.code, e.msg)
        return _sales_err(e)
    except Exception:
        logger.exception("Unexpected error in decline_sale_api sale_id=%s", sale_id)
        return err("Internal server error", 500)


# =========================
# READ
# =========================
@router.get("")
def list_sales_api(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_VIEW_ROLES)
        out = list_sales(db, status=_parse_status(status), page=page, limit=limit, search=search)
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in list_sales_api")
        return err("Internal server error", 500)


@router.get("/product-summary")
def product_summary_api(
    period: PeriodType = Query(PeriodType.DAILY),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_VIEW_ROLES)
        out = product_sales_summary(
            db,
            period=period,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
        return ok(out.model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in product_summary_api")
        return err("Internal server error", 500)


@router.get("/{sale_id}")
def get_sale_api(
    sale_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    try:
        require_any_role(actor, SALE_VIEW_ROLES)
        return ok(get_sale(db, sale_id).model_dump(mode="json"))
    except SalesError as e:
        return _sales_err(e)
    except Exception:
        logger.exception("Unhandled error in get_sale_api sale_id=%s", sale_id)
        return err("Internal server error", 500)
