"""
FieldTrack - User Administration Routes

Admin-only unless noted:
- GET    /users                      - List identities
- POST   /users                      - Create an identity
- GET    /users/{id}                 - One identity (admin or self)
- PUT    /users/{id}                 - Update profile, role or status
- PATCH  /users/{id}/toggle-status   - Activate/deactivate
- DELETE /users/{id}                 - Remove an identity
- GET    /users/{id}/stats           - Lifetime movement statistics
- GET    /users/{id}/movements       - Active movements of an identity
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session as DBSession, select

from fieldtrack.auth import store
from fieldtrack.auth.dependencies import get_activity_tracker, get_current_identity, require_role
from fieldtrack.auth.models import Role, User
from fieldtrack.auth.schemas import MessageResponse, UserPublic
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.database import get_db
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import ConflictError, ForbiddenError, ValidationError
from fieldtrack.movements import service as movement_service
from fieldtrack.movements.models import MovementStatus
from fieldtrack.movements.schemas import MovementListResponse, MovementRead, UserStats
from fieldtrack.users.schemas import CreateUserRequest, UpdateUserRequest, UserListResponse, UserResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

admin_only = [Depends(require_role(Role.ADMIN))]


def _deactivate(db: DBSession, user: User, tracker: ActivityTracker) -> None:
    """Disable an identity and kill its outstanding tokens."""
    user.is_active = False
    store.bump_token_generation(db, user)
    tracker.clear_sessions(db, user)


def _guard_last_admin(db: DBSession, target: User, message: str) -> None:
    if target.role == Role.ADMIN and store.count_admins(db) <= 1:
        raise ValidationError(message)


@router.get("", response_model=UserListResponse, dependencies=admin_only, summary="List identities")
async def list_users(
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    db: DBSession = Depends(get_db),
):
    statement = select(User)
    if role is not None:
        statement = statement.where(User.role == role)
    if is_active is not None:
        statement = statement.where(User.is_active == is_active)
    users = db.exec(statement.order_by(User.created_at.desc())).all()
    return UserListResponse(data=[UserPublic.model_validate(u) for u in users], total=len(users))


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
    summary="Create an identity",
)
async def create_user(
    body: CreateUserRequest,
    admin: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    user = store.create_user(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        region=body.region,
        transport=body.transport,
        role=body.role,
    )
    logger.info("Admin %s created identity %s", admin.id, user.id)
    return UserResponse(message="User created", data=UserPublic.model_validate(user))


@router.get("/{user_id}", response_model=UserResponse, summary="Get an identity")
async def get_user(
    user_id: UUID,
    current: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    """Admins can read any identity; everyone else only themselves."""
    if current.role != Role.ADMIN and current.id != user_id:
        raise ForbiddenError("You can only view your own profile")
    user = store.require_user(db, user_id)
    return UserResponse(data=UserPublic.model_validate(user))


@router.put("/{user_id}", response_model=UserResponse, dependencies=admin_only, summary="Update an identity")
async def update_user(
    user_id: UUID,
    body: UpdateUserRequest,
    admin: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    user = store.require_user(db, user_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    is_active = changes.pop("is_active", None)

    if "email" in changes and changes["email"] != user.email:
        existing = store.get_user_by_email(db, changes["email"])
        if existing is not None and existing.id != user.id:
            raise ConflictError("Email already registered")

    if changes.get("role", user.role) != Role.ADMIN:
        _guard_last_admin(db, user, "Cannot demote the only administrator")

    if is_active is False and user.id == admin.id:
        raise ValidationError("You cannot deactivate your own account")

    # Tokens embed role and email; changing either retires them
    claims_changed = any(
        name in changes and changes[name] != getattr(user, name) for name in ("role", "email")
    )

    for name, value in changes.items():
        setattr(user, name, value)
    if is_active is True:
        user.is_active = True
    user.updated_at = utcnow()
    db.add(user)
    db.commit()

    if is_active is False and user.is_active:
        _deactivate(db, user, tracker)
    elif claims_changed:
        store.bump_token_generation(db, user)
        tracker.clear_sessions(db, user)

    db.refresh(user)
    logger.info("Admin %s updated identity %s", admin.id, user.id)
    return UserResponse(message="User updated", data=UserPublic.model_validate(user))


@router.patch(
    "/{user_id}/toggle-status",
    response_model=UserResponse,
    dependencies=admin_only,
    summary="Activate or deactivate an identity",
)
async def toggle_status(
    user_id: UUID,
    admin: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Deactivation also terminates every session of the identity.
    """
    user = store.require_user(db, user_id)

    if user.is_active:
        if user.id == admin.id:
            raise ValidationError("You cannot deactivate your own account")
        _deactivate(db, user, tracker)
        message = "User deactivated"
    else:
        user.is_active = True
        user.updated_at = utcnow()
        db.add(user)
        db.commit()
        message = "User activated"

    db.refresh(user)
    logger.info("Admin %s: %s (%s)", admin.id, message, user.id)
    return UserResponse(message=message, data=UserPublic.model_validate(user))


@router.delete("/{user_id}", response_model=MessageResponse, dependencies=admin_only, summary="Delete an identity")
async def delete_user(
    user_id: UUID,
    admin: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    """
    Remove an identity after soft-deleting all of its movements.

    Admins cannot delete themselves, and the last admin cannot be removed.
    """
    user = store.require_user(db, user_id)
    if user.id == admin.id:
        raise ValidationError("You cannot delete your own account")
    _guard_last_admin(db, user, "Cannot delete the only administrator")

    removed = movement_service.soft_delete_user_movements(db, user.id)
    tracker.clear_sessions(db, user)
    db.delete(user)
    db.commit()

    logger.info("Admin %s deleted identity %s (%d movements soft-deleted)", admin.id, user_id, removed)
    return MessageResponse(message="User deleted")


@router.get("/{user_id}/stats", response_model=UserStats, dependencies=admin_only, summary="Identity statistics")
async def user_stats(user_id: UUID, db: DBSession = Depends(get_db)):
    store.require_user(db, user_id)
    return UserStats(**movement_service.user_stats(db, user_id))


@router.get(
    "/{user_id}/movements",
    response_model=MovementListResponse,
    dependencies=admin_only,
    summary="Movements of an identity",
)
async def user_movements(
    user_id: UUID,
    status: Optional[MovementStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    db: DBSession = Depends(get_db),
):
    store.require_user(db, user_id)
    items = movement_service.list_user_movements(db, user_id, status=status, limit=limit)
    return MovementListResponse(data=[MovementRead.from_movement(m) for m in items], total=len(items))
