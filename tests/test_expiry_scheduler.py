import asyncio
from datetime import datetime, timedelta

from pharmastock.models import Notification, NotificationType
from pharmastock.services import expiry_scheduler
from pharmastock.utils.timezone import today_local


def test_next_run_is_the_coming_midnight():
    assert expiry_scheduler.seconds_until_next_run(datetime(2026, 3, 1, 23, 0)) == 3600
    assert expiry_scheduler.seconds_until_next_run(datetime(2026, 3, 1, 0, 0)) == 86400
    assert expiry_scheduler.seconds_until_next_run(datetime(2026, 3, 1, 23, 59, 59, 999999)) == 1.0


def test_run_expiry_scan_uses_its_own_session(session_factory, make_batch, db):
    make_batch(on_hand=10, expiry=today_local() - timedelta(days=1))
    make_batch(on_hand=10, expiry=today_local() + timedelta(days=3))

    assert expiry_scheduler.run_expiry_scan(session_factory) == 2
    assert db.query(Notification).filter(
        Notification.notification_type == NotificationType.EXPIRED).count() == 1


def test_run_expiry_scan_failure_is_logged_not_raised(session_factory, make_batch, db, monkeypatch):
    make_batch(on_hand=10, expiry=today_local() - timedelta(days=1))

    def _boom(session, now=None):
        raise RuntimeError("scan exploded")

    monkeypatch.setattr(expiry_scheduler, "scan_expiry", _boom)

    assert expiry_scheduler.run_expiry_scan(session_factory) == 0
    assert db.query(Notification).count() == 0


def test_scheduler_runs_scan_and_stops_on_shutdown(session_factory, monkeypatch):
    calls = []
    monkeypatch.setattr(expiry_scheduler, "seconds_until_next_run", lambda now=None: 0)
    monkeypatch.setattr(expiry_scheduler, "run_expiry_scan", lambda factory: calls.append(factory) or 0)

    async def _lifecycle():
        task = expiry_scheduler.start_expiry_scheduler(session_factory)
        assert expiry_scheduler.start_expiry_scheduler(session_factory) is task
        for _ in range(500):
            if calls:
                break
            await asyncio.sleep(0.01)
        await expiry_scheduler.stop_expiry_scheduler()
        return task

    task = asyncio.run(_lifecycle())

    assert calls and calls[0] is session_factory
    assert task.cancelled()
    assert expiry_scheduler._scheduler_task is None


def test_scheduler_survives_a_failing_iteration(session_factory, monkeypatch):
    calls = []

    def _flaky(factory):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("executor hiccup")
        return 0

    monkeypatch.setattr(expiry_scheduler, "seconds_until_next_run", lambda now=None: 0)
    monkeypatch.setattr(expiry_scheduler, "run_expiry_scan", _flaky)

    async def _lifecycle():
        expiry_scheduler.start_expiry_scheduler(session_factory)
        for _ in range(500):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)
        await expiry_scheduler.stop_expiry_scheduler()

    asyncio.run(_lifecycle())

    assert len(calls) >= 2


def test_stop_without_start_is_a_no_op():
    asyncio.run(expiry_scheduler.stop_expiry_scheduler())
