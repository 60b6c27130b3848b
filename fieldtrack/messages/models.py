"""
FieldTrack - Message Database Model

Messages between identities. Non-admins may only write to admins.
Deleting a message hides it for the recipient (soft delete).
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, Enum as SQLEnum
from sqlmodel import SQLModel, Field

from fieldtrack.datetime_utils import utcnow


BODY_MAX_LENGTH = 1000
DEFAULT_SUBJECT = "No subject"


class MessageKind(str, Enum):
    NOTIFICATION = "notification"
    ALERT = "alert"
    GENERAL = "general"
    REPORT = "report"


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    sender_id: UUID = Field(index=True)
    recipient_id: UUID = Field(index=True)
    subject: str = Field(default=DEFAULT_SUBJECT, max_length=200)
    body: str = Field(max_length=BODY_MAX_LENGTH)
    kind: MessageKind = Field(
        default=MessageKind.GENERAL,
        sa_column=Column(SQLEnum(MessageKind), nullable=False, default=MessageKind.GENERAL),
    )
    read_at: Optional[datetime] = Field(default=None)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
