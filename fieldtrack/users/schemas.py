"""FieldTrack - User Administration Schemas"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from fieldtrack.auth.models import Region, Role, Transport
from fieldtrack.auth.password import MIN_PASSWORD_LENGTH
from fieldtrack.auth.schemas import UserPublic, normalize_email


class CreateUserRequest(BaseModel):
    """Admin-created identities default to the field (engineer) role."""
    name: str = Field(..., min_length=1, max_length=200)
    email: str
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    region: Region
    transport: Transport = Transport.CAR
    role: Role = Role.ENGINEER

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return normalize_email(v)


class UpdateUserRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    region: Optional[Region] = None
    transport: Optional[Transport] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v is not None else v


class UserResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: UserPublic


class UserListResponse(BaseModel):
    success: bool = True
    data: List[UserPublic]
    total: int
