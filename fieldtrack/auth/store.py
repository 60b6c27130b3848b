"""
FieldTrack - Credential Store

Identity persistence helpers shared by the auth, user-admin and
messaging routes. Email addresses are compared lower-cased.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.models import Region, Role, Transport, User
from fieldtrack.auth.password import hash_password
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import ConflictError, NotFoundError


logger = logging.getLogger(__name__)


def get_user_by_email(db: DBSession, email: str) -> Optional[User]:
    statement = select(User).where(func.lower(User.email) == email.strip().lower())
    return db.exec(statement).first()


def get_user(db: DBSession, user_id: UUID) -> Optional[User]:
    return db.get(User, user_id)


def require_user(db: DBSession, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(
    db: DBSession,
    name: str,
    email: str,
    password: str,
    region: Region,
    transport: Transport,
    role: Role = Role.INSPECTOR,
    is_active: bool = True,
) -> User:
    """
    Create an identity after enforcing email uniqueness.

    Raises:
        ConflictError: An identity with the same email (any case) exists
    """
    email = email.strip().lower()
    if get_user_by_email(db, email) is not None:
        raise ConflictError("User already exists")

    now = utcnow()
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        region=region,
        transport=transport,
        is_active=is_active,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("Identity created: %s (%s)", user.id, user.role.value)
    return user


def set_password(db: DBSession, user: User, new_password: str) -> User:
    """
    Replace the password hash and invalidate every outstanding token.

    Clears any pending recovery token.
    """
    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires_at = None
    user.token_generation += 1
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bump_token_generation(db: DBSession, user: User) -> User:
    """Force every token issued so far for this identity to stop refreshing."""
    user.token_generation += 1
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def count_admins(db: DBSession) -> int:
    statement = select(func.count()).select_from(User).where(User.role == Role.ADMIN)
    return db.exec(statement).one()


def ensure_default_admin(db: DBSession, email: str, password: str, name: str) -> Optional[User]:
    """
    Seed the first admin account at startup.

    Creates the admin when missing and reactivates it when disabled.
    An empty password skips seeding.
    """
    if not password:
        logger.warning("DEFAULT_ADMIN_PASSWORD not set; skipping admin seeding")
        return None

    admin = get_user_by_email(db, email)
    if admin is None:
        admin = create_user(
            db,
            name=name,
            email=email,
            password=password,
            region=Region.CALDAS,
            transport=Transport.CAR,
            role=Role.ADMIN,
        )
        logger.info("Default admin created: %s", admin.email)
        return admin

    if not admin.is_active:
        admin.is_active = True
        admin.updated_at = utcnow()
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info("Default admin reactivated: %s", admin.email)

    return admin
