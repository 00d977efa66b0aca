# FILE: pharmastock/services/sales_workflow.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, List, Optional, Set, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from pharmastock.core.errors import (
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from pharmastock.core.rbac import Actor
from pharmastock.models.inventory import Batch, Drug
from pharmastock.models.sales import Sale, SaleLine, SaleStatus
from pharmastock.schemas.common import page_meta
from pharmastock.schemas.sales import (
    SaleCreateIn,
    SaleItemIn,
    SaleListOut,
    SaleOut,
)
from pharmastock.services import batch_ledger
from pharmastock.services.audit_logger import log_audit
from pharmastock.services.notification_trigger import evaluate_batches_after_commit
from pharmastock.utils.timezone import now_local

logger = logging.getLogger(__name__)

AuditFn = Callable[..., bool]
NotifyFn = Callable[[sessionmaker, Set[int]], int]


def _require_actor(actor: Actor) -> int:
    if not actor or getattr(actor, "id", None) is None:
        raise ValidationError("User information is required to change a sale")
    return int(actor.id)


def _check_items(items: List[SaleItemIn]) -> None:
    if not items:
        raise ValidationError("Sale must contain at least one item")
    for i, it in enumerate(items):
        if isinstance(it.quantity, bool) or not isinstance(it.quantity, int) or it.quantity <= 0:
            raise ValidationError(
                f"items[{i}].quantity must be a positive integer",
                details={"index": i, "batch_id": it.batch_id, "quantity": it.quantity},
            )


def _load_sale(db: Session, sale_id: int, *, lock: bool = False) -> Sale:
    q = (
        db.query(Sale)
        .options(selectinload(Sale.lines))
        .filter(Sale.id == sale_id)
        .populate_existing()
    )
    if lock:
        q = q.with_for_update()
    sale = q.first()
    if not sale:
        raise NotFound(f"Sale with ID {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _claim_transition(db: Session, sale: Sale, action: str, values: dict) -> None:
    """
    PENDING -> terminal, as one conditional UPDATE. Whoever flips the row
    first owns the decision; everyone else gets InvalidStateTransition
    before touching the ledger.
    """
    if sale.status != SaleStatus.PENDING:
        raise InvalidStateTransition(sale.id, SaleStatus(sale.status).value, action)

    res = db.execute(
        update(Sale)
        .where(Sale.id == sale.id, Sale.status == SaleStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        current = db.query(Sale.status).filter(Sale.id == sale.id).scalar()
        raise InvalidStateTransition(sale.id, SaleStatus(current).value if current else "UNKNOWN", action)


def _ordered_lines(sale: Sale) -> List[SaleLine]:
    # ascending batch id: same lock order in every transaction
    return sorted(sale.lines, key=lambda ln: (ln.batch_id, ln.id))


# ============================================================
# CREATE
# ============================================================
def create_sale(
    session_factory: sessionmaker,
    payload: SaleCreateIn,
    actor: Actor,
    *,
    audit: AuditFn = log_audit,
) -> SaleOut:
    """
    Reserve stock for every line and persist the sale as PENDING.
    All-or-nothing: one failed reservation rolls back the whole call.
    """
    actor_id = _require_actor(actor)
    _check_items(payload.items)

    def _tx(db: Session) -> SaleOut:
        sale = Sale(status=SaleStatus.PENDING, notes=payload.notes, created_by=actor_id)
        db.add(sale)
        db.flush()

        reserved: dict[int, Batch] = {}
        order = sorted(range(len(payload.items)), key=lambda i: (payload.items[i].batch_id, i))
        for i in order:
            it = payload.items[i]
            reserved[it.batch_id] = batch_ledger.reserve(db, it.batch_id, it.quantity)

        for it in payload.items:
            batch = reserved[it.batch_id]
            db.add(
                SaleLine(
                    sale_id=sale.id,
                    batch_id=it.batch_id,
                    quantity=it.quantity,
                    unit_price_snapshot=Decimal(batch.unit_price or 0),
                    line_notes=it.line_notes,
                ))
        db.flush()
        db.refresh(sale)
        return SaleOut.model_validate(sale)

    out = batch_ledger.atomic(session_factory, _tx)
    logger.info("Sale %s created by user %s with %s line(s)", out.id, actor_id, len(out.lines))

    audit(
        session_factory,
        action="CREATE",
        entity_name="Sale",
        entity_id=out.id,
        actor_id=actor_id,
        summary=f"Created sale with {len(payload.items)} items",
    )
    return out


# ============================================================
# APPROVE / DECLINE
# ============================================================
def approve_sale(
    session_factory: sessionmaker,
    sale_id: int,
    actor: Actor,
    notes: Optional[str] = None,
    *,
    audit: AuditFn = log_audit,
    notify: NotifyFn = evaluate_batches_after_commit,
) -> SaleOut:
    """
    Turn every reservation of a PENDING sale into a stock deduction.
    A failure on any line leaves the sale PENDING and all batches untouched.
    """
    actor_id = _require_actor(actor)

    def _tx(db: Session) -> Tuple[SaleOut, Set[int]]:
        sale = _load_sale(db, sale_id, lock=True)
        now = now_local()
        values = {
            "status": SaleStatus.APPROVED,
            "decided_by": actor_id,
            "decided_at": now,
            "updated_at": now,
        }
        if notes:
            values["notes"] = notes
        _claim_transition(db, sale, "approve", values)

        for line in _ordered_lines(sale):
            batch_ledger.commit(db, line.batch_id, line.quantity)

        db.flush()
        db.refresh(sale)
        return SaleOut.model_validate(sale), {ln.batch_id for ln in sale.lines}

    out, batch_ids = batch_ledger.atomic(session_factory, _tx)
    logger.info("Sale %s approved by user %s", out.id, actor_id)

    try:
        notify(session_factory, batch_ids)
    except Exception:
        logger.exception("Post-approval notification step failed sale_id=%s", out.id)

    audit(
        session_factory,
        action="UPDATE",
        entity_name="Sale",
        entity_id=out.id,
        actor_id=actor_id,
        summary="Approved sale",
    )
    return out


def decline_sale(
    session_factory: sessionmaker,
    sale_id: int,
    actor: Actor,
    reason: str,
    *,
    audit: AuditFn = log_audit,
) -> SaleOut:
    """Release every reservation of a PENDING sale and record why."""
    actor_id = _require_actor(actor)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to decline a sale")

    def _tx(db: Session) -> SaleOut:
        sale = _load_sale(db, sale_id, lock=True)
        now = now_local()
        _claim_transition(db, sale, "decline", {
            "status": SaleStatus.DECLINED,
            "decided_by": actor_id,
            "decided_at": now,
            "decision_reason": reason,
            "updated_at": now,
        })

        for line in _ordered_lines(sale):
            batch_ledger.release(db, line.batch_id, line.quantity)

        db.flush()
        db.refresh(sale)
        return SaleOut.model_validate(sale)

    out = batch_ledger.atomic(session_factory, _tx)
    logger.info("Sale %s declined by user %s", out.id, actor_id)

    audit(
        session_factory,
        action="UPDATE",
        entity_name="Sale",
        entity_id=out.id,
        actor_id=actor_id,
        summary=f"Declined sale: {reason}",
    )
    return out


# ============================================================
# READ
# ============================================================
def get_sale(db: Session, sale_id: int) -> SaleOut:
    return SaleOut.model_validate(_load_sale(db, sale_id))


def list_sales(
    db: Session,
    *,
    status: Optional[SaleStatus] = None,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
) -> SaleListOut:
    q = db.query(Sale)
    if status:
        q = q.filter(Sale.status == status)

    s = (search or "").strip()
    if s:
        like = f"%{s}%"
        drug_match = Sale.lines.any(
            SaleLine.batch.has(
                or_(
                    Batch.batch_number.ilike(like),
                    Batch.drug.has(
                        or_(
                            Drug.generic_name.ilike(like),
                            Drug.trade_name.ilike(like),
                            Drug.sku.ilike(like),
                        )),
                )))
        conds = [Sale.notes.ilike(like), drug_match]
        if s.isdigit():
            conds.append(Sale.id == int(s))
        q = q.filter(or_(*conds))

    total = q.count()
    rows = (
        q.options(selectinload(Sale.lines))
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return SaleListOut(
        items=[SaleOut.model_validate(r) for r in rows],
        pagination=page_meta(page, limit, total),
    )
