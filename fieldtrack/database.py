"""
FieldTrack - Database Configuration

SQLModel database setup with connection pooling.
Supports PostgreSQL (production) and SQLite (development and tests).

Usage:
    from fieldtrack.database import get_engine, init_db

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)  # Creates tables
"""

from typing import Generator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine


def get_engine(database_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Connection URI
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def init_db(engine) -> None:
    """
    Initialize database tables.

    Safe to call multiple times (uses CREATE IF NOT EXISTS).
    """
    # Import models to register them with SQLModel
    from fieldtrack.auth.models import User, UserSession  # noqa: F401
    from fieldtrack.movements.models import Movement  # noqa: F401
    from fieldtrack.messages.models import Message  # noqa: F401

    SQLModel.metadata.create_all(engine)


def ping(engine) -> bool:
    """Round-trip a trivial statement; raises if the store is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


def get_session_factory(engine):
    """
    Create a session factory bound to engine.

    Returns:
        Callable that creates new database sessions
    """
    def session_factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return session_factory


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session from the app's factory.

    The session is closed after the response is produced.
    """
    db = request.app.state.db_session_factory()
    try:
        yield db
    finally:
        db.close()


def not_deleted(model):
    """
    Shared soft-delete filter.

    Every default read path over a soft-deletable model goes through this
    clause so deleted rows never leak into listings or aggregates.
    """
    return model.deleted_at.is_(None)
