"""
Scheduler service for capture session housekeeping.

Features:
- Persist ``expired`` on abandoned capture sessions
- Delete sessions past the retention window
"""
import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from voicesched.utils.config import SESSION_RETENTION_HOURS, SESSION_SWEEP_INTERVAL_MINUTES

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone="UTC")


def sweep_capture_sessions() -> dict:
    """
    Expire abandoned capture sessions and purge old ones.

    Reads already report expiry on their own; this only keeps stored
    statuses honest and the table small.
    """
    from voicesched.db.session import SessionLocal
    from voicesched.services.capture_session_service import capture_session_service

    if SessionLocal is None:
        logger.warning("Session sweep skipped: DATABASE_URL not configured")
        return {"expired": 0, "purged": 0}

    db = SessionLocal()
    try:
        expired = capture_session_service.sweep_expired(db)
        purged = capture_session_service.purge_older_than(db, timedelta(hours=SESSION_RETENTION_HOURS))
    finally:
        db.close()

    logger.info(f"Session sweep: {expired} expired, {purged} purged")
    return {"expired": expired, "purged": purged}


async def run_session_sweep():
    try:
        sweep_capture_sessions()
    except Exception as e:
        logger.error(f"Session sweep error: {e}", exc_info=True)


def start_scheduler():
    """Initialize and start the scheduler."""
    scheduler.add_job(
        run_session_sweep,
        "interval",
        minutes=SESSION_SWEEP_INTERVAL_MINUTES,
        id="capture_session_sweep",
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Scheduler started, sweeping capture sessions every {SESSION_SWEEP_INTERVAL_MINUTES} min")


def stop_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
