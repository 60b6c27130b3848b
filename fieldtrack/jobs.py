"""
FieldTrack - Background Jobs

Bodies of the periodic triggers. Each job opens its own DB session,
catches and logs its own failure, and never raises into the scheduler.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from sqlmodel import Session

from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.datetime_utils import utcnow
from fieldtrack.mailer import MailDeliveryError, Mailer
from fieldtrack.movements.service import identities_without_movements_since, soft_delete_old_movements
from fieldtrack.reports import build_workbook, monthly_rows, report_filename


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def previous_month(now: datetime) -> Tuple[int, int]:
    """(month, year) of the calendar month before now."""
    if now.month == 1:
        return 12, now.year - 1
    return now.month - 1, now.year


def subtract_months(value: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the target month's length."""
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    for day in (value.day, 30, 29, 28):
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return value.replace(year=year, month=month, day=28)


def monthly_report_job(
    session_factory: SessionFactory,
    mailer: Mailer,
    recipients: Iterable[str],
    now: Optional[datetime] = None,
) -> int:
    """Mail the previous month's spreadsheet. Returns the number of rows."""
    recipients = list(recipients)
    month, year = previous_month(now or utcnow())
    db = session_factory()
    try:
        rows = monthly_rows(db, month, year)
        if not recipients:
            logger.warning("Monthly report %02d/%d built but REPORT_RECIPIENTS is empty", month, year)
            return len(rows)
        mailer.send_report(recipients, month, year, report_filename(month, year), build_workbook(rows))
        logger.info("Monthly report %02d/%d sent (%d movements)", month, year, len(rows))
        return len(rows)
    except Exception:
        logger.exception("Monthly report job failed")
        return 0
    finally:
        db.close()


def cleanup_old_movements_job(
    session_factory: SessionFactory,
    retention_days: int,
    now: Optional[datetime] = None,
) -> int:
    """Soft-delete movements dated before the retention window."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    db = session_factory()
    try:
        removed = soft_delete_old_movements(db, cutoff)
        logger.info("Retention cleanup: %d movements older than %s soft-deleted", removed, cutoff.date())
        return removed
    except Exception:
        logger.exception("Retention cleanup job failed")
        return 0
    finally:
        db.close()


def inactive_users_job(
    session_factory: SessionFactory,
    mailer: Mailer,
    months: int,
    now: Optional[datetime] = None,
) -> int:
    """
    Remind active field staff who logged no movement in the last months.

    A failed delivery to one identity does not stop the others.
    Returns the number of notices sent.
    """
    since = subtract_months(now or utcnow(), months)
    db = session_factory()
    try:
        identities = identities_without_movements_since(db, since)
        sent = 0
        for identity in identities:
            try:
                mailer.send_inactivity_notice(identity.email, identity.name, months)
                sent += 1
            except MailDeliveryError as e:
                logger.error("Inactivity notice to identity %s failed: %s", identity.id, e)
        logger.info("Inactive-user notices sent: %d of %d", sent, len(identities))
        return sent
    except Exception:
        logger.exception("Inactive-user job failed")
        return 0
    finally:
        db.close()


def prune_sessions_job(session_factory: SessionFactory, tracker: ActivityTracker) -> int:
    db = session_factory()
    try:
        return tracker.prune_all(db)
    except Exception:
        logger.exception("Session prune job failed")
        return 0
    finally:
        db.close()
