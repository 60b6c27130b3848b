"""
FieldTrack - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models; no response model here
has a password_hash field.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldtrack.auth.models import Region, Role, Transport
from fieldtrack.auth.password import MIN_PASSWORD_LENGTH


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def normalize_email(value: str) -> str:
    """Basic email format validation; returns the lower-cased address."""
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value.lower()


class UserPublic(BaseModel):
    """Identity fields safe to return to clients."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: Role
    region: Region
    transport: Transport
    is_active: bool
    last_login_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    created_at: datetime


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""
    name: str = Field(..., min_length=1, max_length=200)
    email: str
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    region: Region
    transport: Transport

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return normalize_email(v)


class TokenResponse(BaseModel):
    """Response body for register/login."""
    success: bool = True
    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Seconds until the access token expires")
    user: UserPublic


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh."""
    refresh_token: str = Field(..., min_length=1)


class RefreshResponse(BaseModel):
    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class PasswordResetRequest(BaseModel):
    """Request body for POST /auth/request-password-reset."""
    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return normalize_email(v)


class PasswordResetConfirm(BaseModel):
    """Request body for POST /auth/reset-password."""
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /auth/change-password."""
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class SessionInfo(BaseModel):
    """Session descriptor for display."""
    model_config = ConfigDict(from_attributes=True)

    token_id: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    last_activity: datetime
    is_current: bool = False


class ActiveSessionsResponse(BaseModel):
    """Response body for GET /auth/sessions."""
    success: bool = True
    sessions: List[SessionInfo]
    total: int


class SessionStatusResponse(BaseModel):
    """Response body for GET /auth/session-status."""
    success: bool = True
    is_inactive: bool
    is_expired_session: bool
    inactive_minutes: int
    last_activity: Optional[datetime] = None
