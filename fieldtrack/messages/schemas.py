"""FieldTrack - Message Request/Response Schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldtrack.messages.models import BODY_MAX_LENGTH, DEFAULT_SUBJECT, MessageKind


class SendMessageRequest(BaseModel):
    recipient_id: UUID
    body: str = Field(..., min_length=1, max_length=BODY_MAX_LENGTH)
    subject: Optional[str] = Field(default=None, max_length=200)
    kind: MessageKind = MessageKind.GENERAL

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message body is required")
        return v


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sender_id: UUID
    recipient_id: UUID
    subject: str = DEFAULT_SUBJECT
    body: str
    kind: MessageKind
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class MessagePage(BaseModel):
    total: int
    limit: int
    skip: int
    pages: int


class MessageListResponse(BaseModel):
    success: bool = True
    data: List[MessageRead]
    pagination: MessagePage
    unread: Optional[int] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[MessageRead] = None


class MarkAllReadResponse(BaseModel):
    success: bool = True
    message: str
    updated: int
