"""
FieldTrack - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS, rate limiting and request middleware
- Error envelope handlers
- Database lifecycle management and admin seeding
- Background scheduler lifecycle

Startup fails (and the process exits non-zero) when the persistent store
cannot be reached.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from fieldtrack import __version__
from fieldtrack.auth.routes import router as auth_router
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.auth.store import ensure_default_admin
from fieldtrack.auth.tokens import TokenIssuer
from fieldtrack.config import Settings, settings as default_settings
from fieldtrack.dashboard.routes import router as dashboard_router
from fieldtrack.database import get_engine, get_session_factory, init_db, ping
from fieldtrack.errors import register_exception_handlers
from fieldtrack.gateway.middleware import SecurityMiddleware
from fieldtrack.logging_config import configure_logging
from fieldtrack.mailer import Mailer
from fieldtrack.messages.routes import router as messages_router
from fieldtrack.movements.routes import router as movements_router
from fieldtrack.reports import router as reports_router
from fieldtrack.scheduler import build_scheduler, shutdown_scheduler, start_scheduler
from fieldtrack.users.routes import router as users_router


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to the environment-loaded one)
        engine: Pre-built SQLAlchemy engine; tests pass an in-memory one
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Configure logging
            - Connect to the store (fail fast) and create tables
            - Seed the default admin
            - Start the background scheduler

        Shutdown:
            - Stop the scheduler and dispose the engine
        """
        configure_logging(settings.LOG_LEVEL)

        db_engine = engine if engine is not None else get_engine(settings.DATABASE_URL)
        ping(db_engine)
        init_db(db_engine)

        app.state.settings = settings
        app.state.db_engine = db_engine
        app.state.db_session_factory = get_session_factory(db_engine)
        app.state.token_issuer = TokenIssuer(settings)
        app.state.activity_tracker = ActivityTracker(settings)
        app.state.mailer = Mailer(settings)

        db = app.state.db_session_factory()
        try:
            ensure_default_admin(
                db,
                email=settings.DEFAULT_ADMIN_EMAIL,
                password=settings.DEFAULT_ADMIN_PASSWORD,
                name=settings.DEFAULT_ADMIN_NAME,
            )
        finally:
            db.close()

        app.state.scheduler = None
        if settings.SCHEDULER_ENABLED:
            app.state.scheduler = start_scheduler(build_scheduler(
                app.state.db_session_factory,
                settings,
                app.state.mailer,
                app.state.activity_tracker,
            ))

        logger.info("FieldTrack %s started", __version__)
        yield

        if app.state.scheduler is not None:
            shutdown_scheduler(app.state.scheduler)
        if engine is None:
            db_engine.dispose()
        logger.info("FieldTrack stopped")

    app = FastAPI(
        title="FieldTrack",
        description="Field personnel movement tracking for occupational safety inspection",
        version=__version__,
        lifespan=lifespan,
    )

    # Shared per-client budget across every route
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        application_limits=[settings.RATE_LIMIT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(movements_router, prefix=API_PREFIX)
    app.include_router(dashboard_router, prefix=API_PREFIX)
    app.include_router(users_router, prefix=API_PREFIX)
    app.include_router(messages_router, prefix=API_PREFIX)
    app.include_router(reports_router, prefix=API_PREFIX)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    @app.get(f"{API_PREFIX}/system/db-status")
    async def db_status():
        """Round-trip the store; 503 when it cannot be reached."""
        try:
            ping(app.state.db_engine)
        except SQLAlchemyError as e:
            logger.error("Database status check failed: %s", e)
            return JSONResponse(
                status_code=503,
                content={"success": False, "database": "unreachable"},
            )
        return {"success": True, "database": "connected"}

    @app.get("/")
    async def root():
        return {
            "name": "FieldTrack",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
