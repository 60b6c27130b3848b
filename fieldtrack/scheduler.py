"""
Scheduler setup for background tasks.
Uses APScheduler to run the periodic jobs in fieldtrack.jobs.

- Monthly report:        day 2 at 00:05
- Retention cleanup:     Sundays at 03:00
- Inactive-user notice:  day 1 at 09:00
- Session prune:         every 30 minutes
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from fieldtrack import jobs
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.config import Settings
from fieldtrack.mailer import Mailer


logger = logging.getLogger(__name__)


def build_scheduler(session_factory, settings: Settings, mailer: Mailer, tracker: ActivityTracker) -> BackgroundScheduler:
    """Register every job on a new (not yet started) scheduler."""
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        jobs.monthly_report_job,
        trigger=CronTrigger(day=2, hour=0, minute=5),
        kwargs={
            "session_factory": session_factory,
            "mailer": mailer,
            "recipients": settings.REPORT_RECIPIENTS,
        },
        id="monthly_report",
        name="Mail previous month's movement report",
        replace_existing=True,
    )
    scheduler.add_job(
        jobs.cleanup_old_movements_job,
        trigger=CronTrigger(day_of_week="sun", hour=3, minute=0),
        kwargs={
            "session_factory": session_factory,
            "retention_days": settings.MOVEMENT_RETENTION_DAYS,
        },
        id="movement_cleanup",
        name="Soft-delete movements past retention",
        replace_existing=True,
    )
    scheduler.add_job(
        jobs.inactive_users_job,
        trigger=CronTrigger(day=1, hour=9, minute=0),
        kwargs={
            "session_factory": session_factory,
            "mailer": mailer,
            "months": settings.INACTIVE_USER_MONTHS,
        },
        id="inactive_users",
        name="Notify identities without recent movements",
        replace_existing=True,
    )
    scheduler.add_job(
        jobs.prune_sessions_job,
        trigger=IntervalTrigger(minutes=settings.INACTIVITY_TIMEOUT_MINUTES),
        kwargs={"session_factory": session_factory, "tracker": tracker},
        id="session_prune",
        name="Drop idle session descriptors",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: BackgroundScheduler) -> BackgroundScheduler:
    scheduler.start()
    logger.info("Background scheduler started with %d jobs", len(scheduler.get_jobs()))
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
