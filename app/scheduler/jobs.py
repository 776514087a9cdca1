"""
app/scheduler/jobs.py

APScheduler-based background jobs for import housekeeping.

Schedule
--------
  expire_stale_imports: every IMPORT_REAPER_INTERVAL_MINUTES minutes

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from app.config import get_import_settings
from app.services.site_import_service import SiteImportService
from db.session import SessionLocal

logger = logging.getLogger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Yield a fresh session and ensure it is closed on exit."""
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def expire_stale_imports() -> int:
    """
    Fail pending/processing imports with no activity for IMPORT_STALE_AFTER_HOURS,
    releasing the concurrency slot they hold.
    """
    logger.info("Scheduler: expire_stale_imports starting")
    expired = 0
    with _session_scope() as db:
        try:
            expired = SiteImportService(db).expire_stale_imports()
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Scheduler: expire_stale_imports failed: %s", exc)
            return 0

    logger.info("Scheduler: expire_stale_imports complete expired=%s", expired)
    return expired


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    """
    settings = get_import_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        expire_stale_imports,
        trigger="interval",
        minutes=settings.reaper_interval_minutes,
        id="expire_stale_imports",
        name="Expire stale site imports",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )

    return scheduler
