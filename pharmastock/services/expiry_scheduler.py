# pharmastock/services/expiry_scheduler.py
"""
Daily expiry scan, run in the API process.

A plain asyncio loop next to FastAPI: sleep until the next local midnight,
then run `scan_expiry` in the thread pool with its own session. Started on
app startup and cancelled on shutdown.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import sessionmaker

from pharmastock.db.session import SessionLocal
from pharmastock.services.notification_trigger import scan_expiry
from pharmastock.utils.timezone import now_local

logger = logging.getLogger(__name__)

_scheduler_task: Optional[asyncio.Task] = None


def seconds_until_next_run(now: Optional[datetime] = None) -> float:
    """Seconds from `now` to the next local midnight (never zero)."""
    now = now or now_local()
    next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return max((next_midnight - now).total_seconds(), 1.0)


def run_expiry_scan(session_factory: sessionmaker = SessionLocal) -> int:
    """One scan in its own transaction. Returns notifications created, 0 on failure."""
    db = session_factory()
    try:
        with db.begin():
            created = scan_expiry(db)
        logger.info("Expiry scan created %s notification(s)", created)
        return created
    except Exception:
        logger.exception("Expiry scan failed")
        return 0
    finally:
        db.close()


async def _expiry_scheduler_loop(session_factory: sessionmaker) -> None:
    logger.info("Expiry scheduler started")
    while True:
        await asyncio.sleep(seconds_until_next_run())
        try:
            # blocking DB work stays off the event loop
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, run_expiry_scan, session_factory)
        except Exception:
            logger.exception("Expiry scheduler iteration failed")


def start_expiry_scheduler(session_factory: sessionmaker = SessionLocal) -> asyncio.Task:
    """Schedule the loop on the running event loop. Idempotent."""
    global _scheduler_task
    if _scheduler_task is not None and not _scheduler_task.done():
        return _scheduler_task
    _scheduler_task = asyncio.create_task(_expiry_scheduler_loop(session_factory))
    return _scheduler_task


async def stop_expiry_scheduler() -> None:
    global _scheduler_task
    task, _scheduler_task = _scheduler_task, None
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    logger.info("Expiry scheduler stopped")
