"""
FieldTrack - Movement Routes

- POST   /movements                       - Register a trip
- GET    /movements                       - Paginated listing
- GET    /movements/daily/{day}           - Day aggregate
- GET    /movements/monthly/{month}/{year} - Month aggregate
- GET    /movements/user/{user_id}        - One identity's trips (admin)
- GET    /movements/{movement_id}         - One trip
- PATCH  /movements/{movement_id}         - Allow-listed update
- DELETE /movements/{movement_id}         - Soft delete (admin)
"""

import math
from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlmodel import Session as DBSession

from fieldtrack.auth.dependencies import get_current_identity, require_role
from fieldtrack.auth.models import Region, Role, User
from fieldtrack.auth.schemas import MessageResponse
from fieldtrack.auth.store import require_user
from fieldtrack.database import get_db
from fieldtrack.movements import service
from fieldtrack.movements.models import MovementStatus
from fieldtrack.movements.schemas import (
    DailyAggregate,
    MonthlyAggregate,
    MovementListResponse,
    MovementRead,
    MovementResponse,
    Pagination,
)


router = APIRouter(prefix="/movements", tags=["movements"])


@router.post(
    "",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a movement",
)
async def register_movement(
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    movement, warnings = service.register_movement(db, user, payload)
    owner = user if movement.user_id == user.id else db.get(User, movement.user_id)
    return MovementResponse(
        message="Movement registered",
        data=MovementRead.from_movement(movement, owner),
        warnings=warnings,
    )


@router.get("", response_model=MovementListResponse, summary="List movements")
async def list_movements(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[MovementStatus] = None,
    region: Optional[Region] = None,
    include_deleted: bool = False,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    """
    Newest first. Non-admins see only their own records; include_deleted
    is honoured for admins only.
    """
    items, total = service.list_movements(
        db, user, page=page, limit=limit, status=status, region=region,
        include_deleted=include_deleted,
    )
    return MovementListResponse(
        data=[MovementRead.from_movement(m) for m in items],
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit) if total else 0,
            total_records=total,
        ),
        total=total,
    )


@router.get("/daily/{day}", response_model=DailyAggregate, summary="Day aggregate")
async def daily(
    day: date,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    result = service.aggregate_by_day(db, user, day)
    result["records"] = [MovementRead.from_movement(m) for m in result["records"]]
    return DailyAggregate(date=day.isoformat(), **result)


@router.get("/monthly/{month}/{year}", response_model=MonthlyAggregate, summary="Month aggregate")
async def monthly(
    month: int,
    year: int,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    result = service.aggregate_by_month(db, user, month, year)
    return MonthlyAggregate(month=month, year=year, **result)


@router.get(
    "/user/{user_id}",
    response_model=MovementListResponse,
    dependencies=[Depends(require_role(Role.ADMIN))],
    summary="Movements of one identity (admin)",
)
async def user_movements(
    user_id: UUID,
    status: Optional[MovementStatus] = None,
    db: DBSession = Depends(get_db),
    admin: User = Depends(get_current_identity),
):
    require_user(db, user_id)
    items = service.list_user_movements(db, user_id, status=status)
    return MovementListResponse(data=[MovementRead.from_movement(m) for m in items], total=len(items))


@router.get("/{movement_id}", response_model=MovementRead, summary="Get a movement")
async def get_movement(
    movement_id: UUID,
    include_deleted: bool = False,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    movement = service.get_movement(db, movement_id, user, include_deleted=include_deleted)
    return MovementRead.from_movement(movement, db.get(User, movement.user_id))


@router.patch("/{movement_id}", response_model=MovementResponse, summary="Update a movement")
async def update_movement(
    movement_id: UUID,
    patch: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    """Unknown or non-updatable fields in the body are ignored."""
    movement = service.update_allowed_fields(db, movement_id, patch, user)
    return MovementResponse(message="Movement updated", data=MovementRead.from_movement(movement))


@router.delete(
    "/{movement_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_role(Role.ADMIN))],
    summary="Soft-delete a movement (admin)",
)
async def delete_movement(
    movement_id: UUID,
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    service.soft_delete(db, movement_id, user)
    return MessageResponse(message="Movement deleted")
