import threading
import time
from datetime import timedelta

import pytest

from pharmastock.core.config import settings
from pharmastock.core.errors import DuplicateRequest, InsufficientStock
from pharmastock.core.rbac import Actor
from pharmastock.models import IdempotencyRecord, IdempotencyStatus, Sale
from pharmastock.schemas.sales import SaleCreateIn
from pharmastock.services import idempotency
from pharmastock.services.idempotency import make_fingerprint, run_idempotent
from pharmastock.services.sales_workflow import create_sale
from pharmastock.utils.timezone import now_local

SELLER = Actor(id=1, role="SELLER")


def _fp(key="abc-123", actor_id=1, payload=None):
    return make_fingerprint(
        idempotency_key=key,
        actor_id=actor_id,
        method="POST",
        path="/sales",
        payload=payload or {"items": [{"batch_id": 1, "quantity": 1}]},
    )


def test_fingerprint_with_key_ignores_body_but_not_actor():
    assert _fp(payload={"a": 1}) == _fp(payload={"a": 2})
    assert _fp(actor_id=1) != _fp(actor_id=2)
    assert _fp(key="one") != _fp(key="two")


def test_fingerprint_without_key_hashes_the_request():
    same_a = _fp(key=None, payload={"items": [1], "notes": "x"})
    same_b = _fp(key=None, payload={"notes": "x", "items": [1]})
    other = _fp(key=None, payload={"items": [2], "notes": "x"})

    assert same_a == same_b
    assert same_a != other
    assert len(same_a) == 64


def test_same_key_runs_the_sale_once(session_factory, make_batch, batch_qty, db):
    bid = make_batch(on_hand=10)
    payload = SaleCreateIn(items=[{"batch_id": bid, "quantity": 4}])
    fp = _fp(payload=payload.model_dump(mode="json"))

    def op():
        return create_sale(session_factory, payload, SELLER).model_dump(mode="json")

    first = run_idempotent(session_factory, fp, op)
    second = run_idempotent(session_factory, fp, op)

    assert first == second
    assert db.query(Sale).count() == 1
    assert batch_qty(bid) == (10, 4)

    rec = db.get(IdempotencyRecord, fp)
    assert rec.status == IdempotencyStatus.DONE
    assert rec.response["id"] == first["id"]


def test_request_in_flight_is_rejected(session_factory, db):
    fp = _fp()
    db.add(IdempotencyRecord(
        fingerprint=fp,
        status=IdempotencyStatus.IN_PROGRESS,
        expires_at=now_local() + timedelta(minutes=5),
    ))
    db.commit()

    with pytest.raises(DuplicateRequest):
        run_idempotent(session_factory, fp, lambda: pytest.fail("must not run"))


def test_failed_run_frees_the_fingerprint(session_factory, make_batch, batch_qty, db):
    bid = make_batch(on_hand=2)
    payload = SaleCreateIn(items=[{"batch_id": bid, "quantity": 3}])
    fp = _fp()

    with pytest.raises(InsufficientStock):
        run_idempotent(session_factory, fp, lambda: create_sale(session_factory, payload, SELLER))

    assert db.get(IdempotencyRecord, fp) is None
    assert run_idempotent(session_factory, fp, lambda: "retried") == "retried"


def test_expired_record_is_replaced(session_factory, db):
    fp = _fp()
    db.add(IdempotencyRecord(
        fingerprint=fp,
        status=IdempotencyStatus.DONE,
        response={"old": True},
        expires_at=now_local() - timedelta(seconds=1),
    ))
    db.commit()

    assert run_idempotent(session_factory, fp, lambda: {"new": True}) == {"new": True}

    db.expire_all()
    assert db.get(IdempotencyRecord, fp).response == {"new": True}


def test_ttl_controls_record_expiry(session_factory, db):
    fp = _fp(key=None)
    before = now_local()

    run_idempotent(session_factory, fp, lambda: 1, ttl_seconds=60)

    rec = db.get(IdempotencyRecord, fp)
    assert before + timedelta(seconds=55) <= rec.expires_at <= now_local() + timedelta(seconds=60)


def test_claim_is_short_lived_until_the_response_is_stored(session_factory, db):
    fp = _fp()
    seen = {}

    def op():
        s = session_factory()
        try:
            rec = s.get(IdempotencyRecord, fp)
            seen["status"], seen["expires_at"] = rec.status, rec.expires_at
        finally:
            s.close()
        return {"ok": True}

    before = now_local()
    run_idempotent(session_factory, fp, op, ttl_seconds=3600)

    claim_ttl = timedelta(seconds=settings.IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS)
    assert seen["status"] == IdempotencyStatus.IN_PROGRESS
    assert seen["expires_at"] <= now_local() + claim_ttl
    rec = db.get(IdempotencyRecord, fp)
    assert rec.status == IdempotencyStatus.DONE
    assert rec.expires_at >= before + timedelta(seconds=3590)


def test_unfinished_claim_frees_up_after_its_own_ttl(session_factory, db, monkeypatch):
    fp = _fp()
    monkeypatch.setattr(idempotency, "_finish", lambda *args, **kwargs: None)

    assert run_idempotent(session_factory, fp, lambda: "first", ttl_seconds=3600) == "first"
    assert db.get(IdempotencyRecord, fp).status == IdempotencyStatus.IN_PROGRESS

    with pytest.raises(DuplicateRequest):
        run_idempotent(session_factory, fp, lambda: pytest.fail("must not run"), ttl_seconds=3600)

    later = now_local() + timedelta(seconds=settings.IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS + 1)
    assert idempotency._claim(session_factory, fp, later, timedelta(hours=1)) is None


def test_lost_insert_race_reports_duplicate(session_factory):
    fp = _fp()
    raced = []

    def racing_factory():
        session = session_factory()
        plain_get = session.get

        def get(model, key, **kwargs):
            found = plain_get(model, key, **kwargs)
            if model is IdempotencyRecord and not raced:
                # another request claims the fingerprint between our read and insert
                raced.append(1)
                other = session_factory()
                other.add(IdempotencyRecord(
                    fingerprint=fp,
                    status=IdempotencyStatus.IN_PROGRESS,
                    expires_at=now_local() + timedelta(minutes=5),
                ))
                other.commit()
                other.close()
            return found

        session.get = get
        return session

    with pytest.raises(DuplicateRequest):
        run_idempotent(racing_factory, fp, lambda: pytest.fail("must not run"))

    assert raced == [1]


def test_concurrent_same_fingerprint_runs_once(session_factory):
    fp = _fp()
    barrier = threading.Barrier(2)
    calls, results, errors = [], [], []

    def op():
        calls.append(1)
        time.sleep(0.3)
        return {"sale": 1}

    def worker():
        barrier.wait()
        try:
            results.append(run_idempotent(session_factory, fp, op))
        except DuplicateRequest as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(calls) == 1
    assert len(results) + len(errors) == 2
    assert results and all(r == {"sale": 1} for r in results)
