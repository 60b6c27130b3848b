"""
FieldTrack - Message Routes

- GET    /messages                     - Caller's inbox
- GET    /messages/{id}                - Read one message (marks it read)
- POST   /messages                     - Send
- PUT    /messages/{id}/read           - Mark read
- PUT    /messages/mark-all-read       - Mark the whole inbox read
- DELETE /messages/{id}                - Hide from inbox
- GET    /messages/admin/all           - Admin: sent and received
- GET    /messages/admin/user/{id}     - Admin: one identity's traffic
"""

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, update
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.dependencies import AuthenticatedUser, get_current_identity, require_admin
from fieldtrack.auth.models import Role, User
from fieldtrack.auth.store import require_user
from fieldtrack.database import get_db, not_deleted
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import ForbiddenError, NotFoundError
from fieldtrack.messages.models import DEFAULT_SUBJECT, Message, MessageKind
from fieldtrack.messages.schemas import (
    MarkAllReadResponse,
    MessageListResponse,
    MessagePage,
    MessageRead,
    MessageResponse,
    SendMessageRequest,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _page(db: DBSession, condition, limit: int, skip: int, read: Optional[bool] = None,
          kind: Optional[MessageKind] = None):
    statement = select(Message).where(condition, not_deleted(Message))
    count_statement = select(func.count()).select_from(Message).where(condition, not_deleted(Message))

    if read is not None:
        read_clause = Message.read_at.is_not(None) if read else Message.read_at.is_(None)
        statement = statement.where(read_clause)
        count_statement = count_statement.where(read_clause)
    if kind is not None:
        statement = statement.where(Message.kind == kind)
        count_statement = count_statement.where(Message.kind == kind)

    total = db.exec(count_statement).one()
    items = db.exec(statement.order_by(Message.created_at.desc()).offset(skip).limit(limit)).all()
    return [MessageRead.model_validate(m) for m in items], MessagePage(
        total=total, limit=limit, skip=skip, pages=math.ceil(total / limit) if total else 0,
    )


def _unread_count(db: DBSession, user_id: UUID) -> int:
    statement = select(func.count()).select_from(Message).where(
        Message.recipient_id == user_id,
        Message.read_at.is_(None),
        not_deleted(Message),
    )
    return db.exec(statement).one()


def _own_message(db: DBSession, message_id: UUID, user: User) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.deleted_at is not None:
        raise NotFoundError("Message not found")
    if message.recipient_id != user.id:
        raise ForbiddenError("You cannot access this message")
    return message


@router.get("", response_model=MessageListResponse, summary="Inbox")
async def list_messages(
    read: Optional[bool] = None,
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    data, page = _page(db, Message.recipient_id == user.id, limit, skip, read=read)
    return MessageListResponse(data=data, pagination=page, unread=_unread_count(db, user.id))


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    body: SendMessageRequest,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    """
    Non-admin identities can only write to admins.
    """
    recipient = db.get(User, body.recipient_id)
    if recipient is None:
        raise NotFoundError("Recipient not found")
    if user.role != Role.ADMIN and recipient.role != Role.ADMIN:
        raise ForbiddenError("Users can only send messages to an administrator")

    message = Message(
        sender_id=user.id,
        recipient_id=recipient.id,
        subject=body.subject or DEFAULT_SUBJECT,
        body=body.body,
        kind=body.kind,
        created_at=utcnow(),
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    logger.info("Message %s sent from %s to %s", message.id, user.id, recipient.id)
    return MessageResponse(message="Message sent", data=MessageRead.model_validate(message))


@router.put("/mark-all-read", response_model=MarkAllReadResponse, summary="Mark inbox read")
async def mark_all_read(
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    result = db.exec(
        update(Message)
        .where(Message.recipient_id == user.id, Message.read_at.is_(None), not_deleted(Message))
        .values(read_at=utcnow())
    )
    db.commit()
    return MarkAllReadResponse(message="All messages marked as read", updated=result.rowcount or 0)


@router.get("/admin/all", response_model=MessageListResponse, summary="Admin: all own traffic")
async def admin_all_messages(
    read: Optional[bool] = None,
    kind: Optional[MessageKind] = None,
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    admin: AuthenticatedUser = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    condition = or_(Message.sender_id == admin.user_id, Message.recipient_id == admin.user_id)
    data, page = _page(db, condition, limit, skip, read=read, kind=kind)
    return MessageListResponse(data=data, pagination=page, unread=_unread_count(db, admin.user_id))


@router.get("/admin/user/{user_id}", response_model=MessageListResponse, summary="Admin: one identity's traffic")
async def admin_user_messages(
    user_id: UUID,
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    admin: AuthenticatedUser = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    require_user(db, user_id)
    condition = or_(Message.sender_id == user_id, Message.recipient_id == user_id)
    data, page = _page(db, condition, limit, skip)
    return MessageListResponse(data=data, pagination=page)


@router.get("/{message_id}", response_model=MessageResponse, summary="Read a message")
async def get_message(
    message_id: UUID,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    message = _own_message(db, message_id, user)
    if message.read_at is None:
        message.read_at = utcnow()
        db.add(message)
        db.commit()
        db.refresh(message)
    return MessageResponse(message="Message retrieved", data=MessageRead.model_validate(message))


@router.put("/{message_id}/read", response_model=MessageResponse, summary="Mark read")
async def mark_read(
    message_id: UUID,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    message = _own_message(db, message_id, user)
    message.read_at = utcnow()
    db.add(message)
    db.commit()
    db.refresh(message)
    return MessageResponse(message="Message marked as read", data=MessageRead.model_validate(message))


@router.delete("/{message_id}", response_model=MessageResponse, summary="Delete a message")
async def delete_message(
    message_id: UUID,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    message = _own_message(db, message_id, user)
    message.deleted_at = utcnow()
    db.add(message)
    db.commit()
    return MessageResponse(message="Message deleted")
