"""
FieldTrack - Session Activity Tracking

Liveness bookkeeping kept independently of token expiry. Tokens are
stateless; this module only records when and from where each token was
last used so that:

- admins can see concurrent sessions per identity
- callers can decide to force re-authentication after inactivity

Policy:
- A session idle for more than INACTIVITY_TIMEOUT_MINUTES is inactive
- A session older than MAX_SESSION_HOURS is expired regardless of activity

Nothing here rejects a request on its own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.models import User, UserSession
from fieldtrack.config import Settings
from fieldtrack.datetime_utils import utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InactivityStatus:
    is_inactive: bool
    is_expired_session: bool
    inactive_minutes: int


class ActivityTracker:
    """Records per-token activity and evaluates the inactivity policy."""

    def __init__(self, settings: Settings):
        self.inactivity_timeout = timedelta(minutes=settings.INACTIVITY_TIMEOUT_MINUTES)
        self.max_session = timedelta(hours=settings.MAX_SESSION_HOURS)

    def check_inactivity(
        self,
        last_activity: datetime,
        session_started: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> InactivityStatus:
        """
        Evaluate the inactivity policy for a timestamp.

        Args:
            last_activity: Most recent recorded activity
            session_started: Session creation time; when unknown the
                ceiling is measured from last_activity
            now: Reference time (defaults to current UTC)

        Example:
            >>> tracker.check_inactivity(utcnow() - timedelta(minutes=31))
            InactivityStatus(is_inactive=True, is_expired_session=False, inactive_minutes=31)
        """
        now = now or utcnow()
        idle = now - last_activity
        elapsed = now - (session_started or last_activity)

        return InactivityStatus(
            is_inactive=idle > self.inactivity_timeout,
            is_expired_session=elapsed > self.max_session,
            inactive_minutes=max(int(idle.total_seconds() // 60), 0),
        )

    def record_activity(
        self,
        db: DBSession,
        user: User,
        token_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserSession:
        """
        Upsert the session descriptor for token_id and bump last activity.

        Args:
            db: Database session
            user: Identity owning the token
            token_id: jti of the access token in use
            ip_address: Client origin
            user_agent: Client descriptor
        """
        now = utcnow()
        user.last_activity_at = now

        statement = select(UserSession).where(
            UserSession.user_id == user.id,
            UserSession.token_id == token_id,
        )
        descriptor = db.exec(statement).first()

        if descriptor:
            descriptor.last_activity = now
        else:
            descriptor = UserSession(
                user_id=user.id,
                token_id=token_id,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
                created_at=now,
                last_activity=now,
            )

        db.add(user)
        db.add(descriptor)
        db.commit()
        db.refresh(descriptor)

        return descriptor

    def prune_expired_sessions(self, db: DBSession, user: User) -> int:
        """
        Remove this identity's descriptors idle past the inactivity timeout.

        Idempotent: a second call right after the first removes nothing.

        Returns:
            Number of descriptors removed
        """
        cutoff = utcnow() - self.inactivity_timeout
        statement = delete(UserSession).where(
            UserSession.user_id == user.id,
            UserSession.last_activity < cutoff,
        )
        result = db.exec(statement)
        db.commit()
        return result.rowcount or 0

    def prune_all(self, db: DBSession) -> int:
        """Periodic sweep across every identity."""
        cutoff = utcnow() - self.inactivity_timeout
        result = db.exec(delete(UserSession).where(UserSession.last_activity < cutoff))
        db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Pruned %d idle session descriptors", removed)
        return removed

    def list_sessions(self, db: DBSession, user: User) -> List[UserSession]:
        """Descriptors for an identity, most recently active first."""
        statement = (
            select(UserSession)
            .where(UserSession.user_id == user.id)
            .order_by(UserSession.last_activity.desc())
        )
        return list(db.exec(statement).all())

    def session_for_token(self, db: DBSession, user: User, token_id: str) -> Optional[UserSession]:
        statement = select(UserSession).where(
            UserSession.user_id == user.id,
            UserSession.token_id == token_id,
        )
        return db.exec(statement).first()

    def clear_sessions(self, db: DBSession, user: User) -> int:
        """Drop every descriptor for an identity (logout, deletion)."""
        result = db.exec(delete(UserSession).where(UserSession.user_id == user.id))
        db.commit()
        return result.rowcount or 0
