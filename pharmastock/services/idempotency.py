# FILE: pharmastock/services/idempotency.py
"""
At-most-once execution for create requests.

    fingerprint  DONE, unexpired         -> cached response, nothing re-runs
    fingerprint  IN_PROGRESS, unexpired  -> DuplicateRequest (retry later)
    otherwise                            -> claim, run, store DONE for the TTL

The IN_PROGRESS claim gets a short expiry of its own; only the stored DONE
response is kept for the full TTL.

Claiming is a plain INSERT on the fingerprint primary key, so the check and
the mark cannot race: the loser of two concurrent inserts gets an
IntegrityError and re-reads the winner's row. A failed run deletes its claim
so a legitimate retry can go through.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from pharmastock.core.config import settings
from pharmastock.core.errors import DuplicateRequest
from pharmastock.models.idempotency import IdempotencyRecord, IdempotencyStatus
from pharmastock.services.batch_ledger import is_write_conflict
from pharmastock.utils.timezone import now_local

logger = logging.getLogger(__name__)

MAX_CLAIM_ATTEMPTS = 3


def make_fingerprint(
    *,
    idempotency_key: Optional[str],
    actor_id: Optional[int],
    method: str,
    path: str,
    payload: Any,
) -> str:
    """
    Client key scoped to the actor; without a key, the actor + request body
    itself, so an identical replay is caught too.
    """
    key = (idempotency_key or "").strip()
    if key:
        raw = f"key:{actor_id or 'anonymous'}:{key}"
    else:
        body = json.dumps(payload or {}, sort_keys=True, separators=(",", ":"), default=str)
        raw = f"req:{method.upper()}:{path.split('?')[0]}:{actor_id or 'anonymous'}:{body}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _claim(session_factory: sessionmaker, fingerprint: str, now: datetime, ttl: timedelta) -> Optional[Any]:
    """
    Returns None when this caller now owns the fingerprint, otherwise the
    cached response of a finished request. Raises DuplicateRequest while
    another request holds it.

    A claim expires after IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS, so a request
    that dies before storing its result does not block retries for the full
    response TTL.
    """
    claim_ttl = min(ttl, timedelta(seconds=settings.IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS))
    for _ in range(MAX_CLAIM_ATTEMPTS):
        db = session_factory()
        try:
            rec = db.get(IdempotencyRecord, fingerprint)
            if rec is not None and rec.expires_at <= now:
                db.expunge(rec)
                db.query(IdempotencyRecord).filter(
                    IdempotencyRecord.fingerprint == fingerprint,
                    IdempotencyRecord.expires_at <= now,
                ).delete(synchronize_session=False)
                db.commit()
                rec = None

            if rec is not None:
                if rec.status == IdempotencyStatus.DONE:
                    logger.info("Replaying cached response fingerprint=%s", fingerprint[:12])
                    return {"cached": rec.response}
                raise DuplicateRequest(
                    "Duplicate request detected. Please wait before retrying.",
                    details={"fingerprint": fingerprint},
                )

            db.add(IdempotencyRecord(
                fingerprint=fingerprint,
                status=IdempotencyStatus.IN_PROGRESS,
                expires_at=now + claim_ttl,
                created_at=now,
            ))
            db.commit()
            return None
        except IntegrityError:
            # lost the insert race; look again
            db.rollback()
        except OperationalError as e:
            if not is_write_conflict(e):
                raise
            db.rollback()
        finally:
            db.close()

    raise DuplicateRequest(
        "Duplicate request detected. Please wait before retrying.",
        details={"fingerprint": fingerprint},
    )


def _finish(session_factory: sessionmaker, fingerprint: str, response: Any, ttl: timedelta) -> None:
    db = session_factory()
    try:
        rec = db.get(IdempotencyRecord, fingerprint)
        if rec is None:
            rec = IdempotencyRecord(fingerprint=fingerprint)
            db.add(rec)
        rec.status = IdempotencyStatus.DONE
        rec.response = response
        rec.expires_at = now_local() + ttl
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not store idempotent response fingerprint=%s", fingerprint[:12])
    finally:
        db.close()


def _abandon(session_factory: sessionmaker, fingerprint: str) -> None:
    db = session_factory()
    try:
        db.query(IdempotencyRecord).filter(
            IdempotencyRecord.fingerprint == fingerprint,
            IdempotencyRecord.status == IdempotencyStatus.IN_PROGRESS,
        ).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not release idempotency claim fingerprint=%s", fingerprint[:12])
    finally:
        db.close()


def run_idempotent(
    session_factory: sessionmaker,
    fingerprint: str,
    operation: Callable[[], Any],
    *,
    ttl_seconds: Optional[int] = None,
) -> Any:
    """
    Execute `operation` at most once per fingerprint within the TTL.
    `operation` must return a JSON-serializable value; that value is what
    later duplicates receive.
    """
    ttl = timedelta(seconds=ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS)

    cached = _claim(session_factory, fingerprint, now_local(), ttl)
    if cached is not None:
        return cached["cached"]

    try:
        result = operation()
    except BaseException:
        _abandon(session_factory, fingerprint)
        raise

    _finish(session_factory, fingerprint, result, ttl)
    return result
