"""
Background scheduler.
Handles:
- Daily reconciliation audit of stored point totals against ledger entries
"""
import logging
import os
from datetime import date, datetime
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi.concurrency import run_in_threadpool

from habit_ledger.constants import DEFAULT_AUDIT_TIME
from habit_ledger.database import SessionLocal
from habit_ledger.services.date_service import DateService
from habit_ledger.services.points_service import PointsService

logger = logging.getLogger("habit_ledger.scheduler")

AUDIT_ENABLED = os.getenv("HABIT_LEDGER_AUDIT_ENABLED", "true").lower() in ("1", "true", "yes")
AUDIT_TIME = os.getenv("HABIT_LEDGER_AUDIT_TIME", DEFAULT_AUDIT_TIME)

scheduler = AsyncIOScheduler()

_last_audit_date: Optional[date] = None


def should_run_audit(now: datetime, audit_time: str, last_run: Optional[date]) -> bool:
    """True once per day, as soon as audit_time has been reached"""
    try:
        hour, minute = DateService.parse_time(audit_time)
    except (ValueError, IndexError):
        logger.error(f"Invalid audit time {audit_time!r}, expected HH:MM")
        return False

    if last_run == now.date():
        return False
    return (now.hour, now.minute) >= (hour, minute)


def audit_totals() -> List[dict]:
    """Run the audit in its own session"""
    db = SessionLocal()
    try:
        return PointsService(db).audit_totals()
    finally:
        db.close()


async def run_reconciliation_audit():
    """Job: log students whose stored total differs from their ledger"""
    global _last_audit_date

    now = datetime.now()
    if not should_run_audit(now, AUDIT_TIME, _last_audit_date):
        return

    try:
        # Blocking SQLAlchemy work runs in a worker thread
        mismatches = await run_in_threadpool(audit_totals)
        _last_audit_date = now.date()
        if mismatches:
            logger.warning(f"Reconciliation audit found {len(mismatches)} mismatched totals")
        else:
            logger.info("Reconciliation audit: all totals match their ledgers")
    except Exception as e:
        logger.error(f"Scheduler Error (Audit): {e}")


def start_scheduler():
    """Start the scheduler"""
    if not AUDIT_ENABLED:
        logger.info("Reconciliation audit disabled, scheduler not started")
        return

    if not scheduler.running:
        scheduler.add_job(
            run_reconciliation_audit,
            CronTrigger(minute='*'),
            id='reconciliation_audit',
            replace_existing=True
        )
        scheduler.start()
        logger.info(f"Scheduler started, jobs: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
