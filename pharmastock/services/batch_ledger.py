# FILE: pharmastock/services/batch_ledger.py
"""
Per-batch quantity ledger.

    on_hand_qty   physical stock
    reserved_qty  held by PENDING sales
    available     on_hand_qty - reserved_qty

reserve / commit / release never read-modify-write in Python: each one is a
single conditional UPDATE whose WHERE clause carries the guard, so two
writers on the same batch cannot both pass the check. On MySQL/Postgres the
row is also locked FOR UPDATE first so the sale transaction holds it until
commit. All three run inside the caller's transaction; `atomic` owns that
transaction and retries it when the database reports a write conflict.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import and_, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from pharmastock.core.config import settings
from pharmastock.core.errors import (
    ConcurrencyConflict,
    InsufficientStock,
    InvariantViolation,
    NotFound,
    ValidationError,
)
from pharmastock.models.inventory import Batch
from pharmastock.utils.timezone import now_local

logger = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL: lock wait timeout, deadlock
MYSQL_CONFLICT_ERRNOS = {1205, 1213}
# Postgres: serialization failure, deadlock
PG_CONFLICT_SQLSTATES = {"40001", "40P01"}
# SQLite busy / locked, and the same conditions as worded by other drivers
CONFLICT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "lock wait timeout",
    "deadlock",
    "could not serialize",
)


def is_write_conflict(exc: BaseException) -> bool:
    """
    True only for lock contention the database expects the client to retry.
    Missing tables, lost connections and bad credentials are not conflicts.
    """
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, OperationalError):
        return False

    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ()) or ()
    if args and isinstance(args[0], int) and args[0] in MYSQL_CONFLICT_ERRNOS:
        return True

    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in PG_CONFLICT_SQLSTATES:
        return True

    msg = str(orig).lower()
    return any(m in msg for m in CONFLICT_MESSAGES)


def _check_qty(qty) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise ValidationError(f"Quantity must be an integer, got {qty!r}")
    if qty <= 0:
        raise ValidationError("Quantity must be > 0", details={"quantity": qty})
    return qty


def lock_batch(db: Session, batch_id: int) -> Batch:
    batch = (
        db.query(Batch)
        .filter(Batch.id == batch_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not batch:
        raise NotFound(f"Batch with ID {batch_id} not found", details={"batch_id": batch_id})
    return batch


def _apply(db: Session, batch_id: int, guard, values: dict) -> bool:
    values = dict(values, version=Batch.version + 1, updated_at=now_local())
    res = db.execute(
        update(Batch)
        .where(Batch.id == batch_id, guard)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def reserve(db: Session, batch_id: int, qty: int) -> Batch:
    """Hold `qty` units for a pending sale."""
    qty = _check_qty(qty)
    batch = lock_batch(db, batch_id)

    done = _apply(
        db,
        batch_id,
        (Batch.on_hand_qty - Batch.reserved_qty) >= qty,
        {"reserved_qty": Batch.reserved_qty + qty},
    )
    db.refresh(batch)
    if not done:
        raise InsufficientStock(batch_id, qty, batch.available_qty)
    return batch


def commit(db: Session, batch_id: int, qty: int) -> Batch:
    """Turn a reservation into a real deduction of on-hand stock."""
    qty = _check_qty(qty)
    batch = lock_batch(db, batch_id)

    done = _apply(
        db,
        batch_id,
        and_(Batch.reserved_qty >= qty, Batch.on_hand_qty >= qty),
        {
            "on_hand_qty": Batch.on_hand_qty - qty,
            "reserved_qty": Batch.reserved_qty - qty,
        },
    )
    db.refresh(batch)
    if not done:
        raise InvariantViolation(
            f"Cannot commit {qty} units on batch {batch_id}: only {batch.reserved_qty} reserved",
            details={"batch_id": batch_id, "requested": qty, "reserved": batch.reserved_qty},
        )
    return batch


def release(db: Session, batch_id: int, qty: int) -> Batch:
    """Drop a reservation without touching on-hand stock."""
    qty = _check_qty(qty)
    batch = lock_batch(db, batch_id)

    done = _apply(
        db,
        batch_id,
        Batch.reserved_qty >= qty,
        {"reserved_qty": Batch.reserved_qty - qty},
    )
    db.refresh(batch)
    if not done:
        raise InvariantViolation(
            f"Cannot release {qty} units on batch {batch_id}: only {batch.reserved_qty} reserved",
            details={"batch_id": batch_id, "requested": qty, "reserved": batch.reserved_qty},
        )
    return batch


def atomic(
    session_factory: sessionmaker,
    fn: Callable[[Session], T],
    *,
    attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
) -> T:
    """
    Run `fn` in one transaction on a fresh session.

    Business errors and non-conflict database errors propagate untouched
    (after rollback). Write conflicts reported by the database roll back and
    re-run `fn` from scratch, at most `attempts` times, then surface
    ConcurrencyConflict.
    """
    attempts = max(1, attempts or settings.LEDGER_MAX_ATTEMPTS)
    backoff = (settings.LEDGER_RETRY_BACKOFF_MS if backoff_ms is None else backoff_ms) / 1000.0

    last_exc: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        db = session_factory()
        try:
            with db.begin():
                return fn(db)
        except (OperationalError, StaleDataError) as e:
            if not is_write_conflict(e):
                raise
            last_exc = e
            logger.warning("Write conflict (attempt %s/%s): %s", attempt, attempts, e)
        finally:
            db.close()
        if attempt < attempts:
            time.sleep(backoff * attempt)

    raise ConcurrencyConflict(
        "Stock is being updated by another request. Please retry.",
        details={"attempts": attempts},
    ) from last_exc
