"""
FieldTrack - Identity Database Models

SQLModel-based models for identities and their session descriptors.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- password_hash never leaves this layer (see auth.schemas.UserPublic)
- All timestamps in naive UTC
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field

from fieldtrack.datetime_utils import utcnow


class Role(str, Enum):
    """
    Identity roles.

    ENGINEER is the field role; INSPECTOR is the default for
    self-registered accounts.
    """
    ENGINEER = "engineer"
    INSPECTOR = "inspector"
    ADMIN = "admin"


class Region(str, Enum):
    CALDAS = "Caldas"
    RISARALDA = "Risaralda"
    QUINDIO = "Quindío"


class Transport(str, Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"


class User(SQLModel, table=True):
    """
    Identity record.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier, stored lower-cased (unique, indexed)
        password_hash: bcrypt hash (never store plaintext)
        role: Role used for route authorization
        region: Operating region
        transport: Registered vehicle, default for new movements
        is_active: Inactive identities cannot log in
        token_generation: Bumped to invalidate every outstanding token
        last_activity_at: Updated by activity pings
        reset_token: One-shot password recovery token
    """
    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=200)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    role: Role = Field(default=Role.INSPECTOR)
    region: Region
    transport: Transport = Field(default=Transport.CAR)
    is_active: bool = Field(default=True)
    token_generation: int = Field(default=0)

    last_login_at: Optional[datetime] = Field(default=None)
    last_activity_at: Optional[datetime] = Field(default=None)

    reset_token: Optional[str] = Field(default=None, max_length=64, index=True)
    reset_token_expires_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserSession(SQLModel, table=True):
    """
    Concurrent session descriptor, keyed by the access token's jti.

    Descriptors are bookkeeping only; tokens remain stateless and a
    missing descriptor never rejects a request.
    """
    __tablename__ = "user_sessions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    token_id: str = Field(max_length=64, index=True)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
