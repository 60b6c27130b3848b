"""
FieldTrack - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Components receive the Settings object at construction time; business
logic never reads the module-level instance directly.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: SQLAlchemy connection URI for the persistent store
        ACCESS_TOKEN_SECRET: Signing key for short-lived access tokens
        REFRESH_TOKEN_SECRET: Signing key for long-lived refresh tokens
        DEFAULT_ADMIN_EMAIL: Admin account seeded at startup
        SMTP_HOST: Outbound mail relay (empty disables delivery)
        ALLOWED_ORIGINS: CORS allowed origins for the mobile/web clients
        RATE_LIMIT: Requests allowed per client address and window
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./fieldtrack.db"

    # Tokens
    ACCESS_TOKEN_SECRET: str = ""  # Must be set via environment
    REFRESH_TOKEN_SECRET: str = ""  # Must be set via environment
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Session activity policy
    INACTIVITY_TIMEOUT_MINUTES: int = 30
    MAX_SESSION_HOURS: int = 8

    # Password recovery
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    FRONTEND_URL: str = "http://localhost:3000"

    # Seed admin
    DEFAULT_ADMIN_EMAIL: str = "admin@fieldtrack.local"
    DEFAULT_ADMIN_PASSWORD: str = ""  # Must be set via environment
    DEFAULT_ADMIN_NAME: str = "FieldTrack Administrator"

    # Outbound mail
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_STARTTLS: bool = True
    MAIL_FROM: str = "FieldTrack <no-reply@fieldtrack.local>"
    REPORT_RECIPIENTS: List[str] = []

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    MOVEMENT_RETENTION_DAYS: int = 365
    INACTIVE_USER_MONTHS: int = 3

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Per-client request limit, in limits notation ("100/15minutes")
    RATE_LIMIT: str = "100/15minutes"
    RATE_LIMIT_ENABLED: bool = True


settings = Settings()
