"""
FieldTrack - Movement Recorder & Aggregator

Registration, allow-listed updates, soft delete and the daily/monthly/
per-identity projections over movement records.

Every function takes an open DB session and the requesting identity
(a User row). Non-admin callers are always scoped to their own records;
soft-deleted rows are excluded unless an admin asks for them.
"""

import logging
import math
from datetime import date as date_type, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, update
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.models import Role, User
from fieldtrack.database import not_deleted
from fieldtrack.datetime_utils import to_naive_utc, utcnow
from fieldtrack.errors import ForbiddenError, NotFoundError, ValidationError
from fieldtrack.movements.models import Movement, MovementStatus
from fieldtrack.movements.schemas import MovementCreate, MovementPatch


logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "distance_km",
    "avg_speed_kmh",
    "max_speed_kmh",
    "duration_minutes",
    "date",
    "region",
    "notes",
    "end_location",
    "incidents",
    "route",
    "status",
})

ZERO_WARNING_FIELDS = ("distance_km", "avg_speed_kmh", "max_speed_kmh", "duration_minutes")


def is_admin(identity: User) -> bool:
    return identity.role == Role.ADMIN


def _field_errors(exc: PydanticValidationError) -> List[str]:
    fields = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        if path and path not in fields:
            fields.append(path)
    return fields


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(value) if value is not None else None


def _samples(items) -> List[dict]:
    """Serialize route samples / incidents for the JSON columns."""
    now = utcnow()
    dumped = []
    for item in items:
        data = item.model_dump(mode="json")
        if data.get("timestamp") is None:
            data["timestamp"] = now.isoformat()
        dumped.append(data)
    return dumped


def scoped(statement, requester: User, include_deleted: bool = False):
    """Restrict a Movement statement to what requester may see."""
    if not is_admin(requester):
        statement = statement.where(Movement.user_id == requester.id)
    if not (include_deleted and is_admin(requester)):
        statement = statement.where(not_deleted(Movement))
    return statement


def register_movement(db: DBSession, requester: User, payload: Dict[str, Any]) -> Tuple[Movement, List[str]]:
    """
    Validate and persist one trip.

    Args:
        db: Database session
        requester: Authenticated identity
        payload: Raw request body

    Returns:
        (movement, warnings); warnings name numeric fields reported as zero

    Raises:
        ValidationError: Missing, mistyped, negative or out-of-enum values,
            or a completed trip without an end location
        ForbiddenError: Non-admin registering for another identity
        NotFoundError: Target identity does not exist
    """
    try:
        data = MovementCreate.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Invalid movement data", fields=_field_errors(e))

    if data.status == MovementStatus.COMPLETED and data.end_location is None:
        raise ValidationError("A completed movement needs an end location", fields=["end_location"])

    owner = requester
    if data.user_id is not None and data.user_id != requester.id:
        if not is_admin(requester):
            raise ForbiddenError("Cannot register movements for another user")
        owner = db.get(User, data.user_id)
        if owner is None:
            raise NotFoundError("User not found")

    warnings = [
        f"{name} is 0"
        for name in ZERO_WARNING_FIELDS
        if getattr(data, name) == 0
    ]

    now = utcnow()
    day = _naive(data.date)
    start = data.start_location
    end = data.end_location

    movement = Movement(
        user_id=owner.id,
        kind=data.kind,
        status=data.status or (MovementStatus.COMPLETED if end else MovementStatus.STARTED),
        start_latitude=start.latitude,
        start_longitude=start.longitude,
        start_at=_naive(start.timestamp) or day,
        start_address=start.address,
        route=_samples(data.route),
        distance_km=data.distance_km,
        avg_speed_kmh=data.avg_speed_kmh,
        max_speed_kmh=data.max_speed_kmh,
        duration_minutes=int(round(data.duration_minutes)),
        date=day,
        region=data.region,
        transport=data.transport or owner.transport,
        notes=data.notes or "",
        incidents=_samples(data.incidents),
        created_at=now,
        updated_at=now,
    )

    if end is not None:
        movement.end_latitude = end.latitude
        movement.end_longitude = end.longitude
        movement.end_at = _naive(end.timestamp) or now
        movement.end_address = end.address
        if movement.status == MovementStatus.COMPLETED:
            movement.ended_at = movement.end_at

    db.add(movement)
    db.commit()
    db.refresh(movement)

    logger.info(
        "Movement %s registered for identity %s (%.2f km, %s)",
        movement.id, owner.id, movement.distance_km, movement.region.value,
    )
    return movement, warnings


def get_movement(db: DBSession, movement_id: UUID, requester: User, include_deleted: bool = False) -> Movement:
    """
    Fetch one record visible to the requester.

    Soft-deleted records are visible only to admins passing include_deleted.
    """
    movement = db.get(Movement, movement_id)
    if movement is None:
        raise NotFoundError("Movement not found")
    if movement.deleted_at is not None and not (include_deleted and is_admin(requester)):
        raise NotFoundError("Movement not found")
    if movement.user_id != requester.id and not is_admin(requester):
        raise ForbiddenError("You cannot access this movement")
    return movement


def list_movements(
    db: DBSession,
    requester: User,
    page: int = 1,
    limit: int = 10,
    status: Optional[MovementStatus] = None,
    region=None,
    include_deleted: bool = False,
) -> Tuple[List[Movement], int]:
    """Paginated listing, newest first. Returns (page items, total matches)."""
    statement = scoped(select(Movement), requester, include_deleted)
    count_statement = scoped(select(func.count()).select_from(Movement), requester, include_deleted)

    if status is not None:
        statement = statement.where(Movement.status == status)
        count_statement = count_statement.where(Movement.status == status)
    if region is not None:
        statement = statement.where(Movement.region == region)
        count_statement = count_statement.where(Movement.region == region)

    total = db.exec(count_statement).one()
    statement = statement.order_by(Movement.date.desc()).offset((page - 1) * limit).limit(limit)
    return list(db.exec(statement).all()), total


def list_user_movements(
    db: DBSession,
    user_id: UUID,
    status: Optional[MovementStatus] = None,
    limit: int = 100,
) -> List[Movement]:
    """Active records of one identity, newest first (admin views)."""
    statement = select(Movement).where(Movement.user_id == user_id, not_deleted(Movement))
    if status is not None:
        statement = statement.where(Movement.status == status)
    statement = statement.order_by(Movement.date.desc()).limit(limit)
    return list(db.exec(statement).all())


def _aggregate(db: DBSession, requester: User, start: datetime, end: datetime) -> Dict[str, Any]:
    statement = scoped(
        select(
            func.count(Movement.id),
            func.coalesce(func.sum(Movement.distance_km), 0),
            func.coalesce(func.avg(Movement.avg_speed_kmh), 0),
            func.coalesce(func.max(Movement.max_speed_kmh), 0),
            func.coalesce(func.sum(Movement.duration_minutes), 0),
        ),
        requester,
    ).where(Movement.date >= start, Movement.date < end)

    count, total_distance, avg_speed, max_speed, total_duration = db.exec(statement).one()
    return {
        "count": count or 0,
        "total_distance": float(total_distance or 0),
        "avg_average_speed": float(avg_speed or 0),
        "max_max_speed": float(max_speed or 0),
        "total_duration_minutes": int(total_duration or 0),
    }


def _records_between(db: DBSession, requester: User, start: datetime, end: datetime) -> List[Movement]:
    statement = scoped(select(Movement), requester).where(
        Movement.date >= start,
        Movement.date < end,
    )
    return list(db.exec(statement.order_by(Movement.date.desc())).all())


def month_bounds(month: int, year: int) -> Tuple[datetime, datetime]:
    """[first day of month, first day of next month) as naive datetimes."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", fields=["month"])
    if not 2000 <= year <= 9999:
        raise ValidationError("Invalid year", fields=["year"])
    start = datetime(year, month, 1)
    if month == 12:
        return start, datetime(year + 1, 1, 1)
    return start, datetime(year, month + 1, 1)


def aggregate_by_day(db: DBSession, requester: User, day: date_type) -> Dict[str, Any]:
    """
    Totals for one calendar day.

    An empty day yields count=0 and zero aggregates, never an error.
    """
    start = datetime(day.year, day.month, day.day)
    end = start + timedelta(days=1)

    result = _aggregate(db, requester, start, end)
    result.pop("total_duration_minutes")
    result["records"] = _records_between(db, requester, start, end)
    return result


def aggregate_by_month(db: DBSession, requester: User, month: int, year: int) -> Dict[str, Any]:
    """Totals for one calendar month plus the start location of each trip."""
    start, end = month_bounds(month, year)

    result = _aggregate(db, requester, start, end)
    records = _records_between(db, requester, start, end)
    result["completed"] = sum(1 for m in records if m.status == MovementStatus.COMPLETED)
    result["incidents_reported"] = sum(len(m.incidents or []) for m in records)
    result["locations"] = [m.start_location() for m in records]
    return result


def update_allowed_fields(db: DBSession, movement_id: UUID, patch: Dict[str, Any], requester: User) -> Movement:
    """
    Apply an allow-listed patch.

    Fields outside UPDATABLE_FIELDS are dropped silently. Moving the
    status to completed stamps ended_at (end location timestamp, else
    now) and recomputes duration_minutes from start_at.

    Raises:
        NotFoundError: Unknown or soft-deleted record
        ForbiddenError: Requester is neither owner nor admin
        ValidationError: Allowed field with an invalid value
    """
    movement = db.get(Movement, movement_id)
    if movement is None or movement.deleted_at is not None:
        raise NotFoundError("Movement not found")
    if movement.user_id != requester.id and not is_admin(requester):
        raise ForbiddenError("You cannot update this movement")

    allowed = {key: value for key, value in (patch or {}).items() if key in UPDATABLE_FIELDS}
    ignored = sorted(set(patch or {}) - UPDATABLE_FIELDS)
    if ignored:
        logger.debug("Ignoring non-updatable fields on movement %s: %s", movement_id, ignored)

    try:
        data = MovementPatch.model_validate(allowed)
    except PydanticValidationError as e:
        raise ValidationError("Invalid movement data", fields=_field_errors(e))

    now = utcnow()
    supplied = {name for name in data.model_fields_set if getattr(data, name) is not None}

    for name in ("distance_km", "avg_speed_kmh", "max_speed_kmh", "region", "notes"):
        if name in supplied:
            setattr(movement, name, getattr(data, name))
    if "duration_minutes" in supplied:
        movement.duration_minutes = int(round(data.duration_minutes))
    if "date" in supplied:
        movement.date = _naive(data.date)
    if "route" in supplied:
        movement.route = _samples(data.route)
    if "incidents" in supplied:
        movement.incidents = _samples(data.incidents)
    if "end_location" in supplied:
        end = data.end_location
        movement.end_latitude = end.latitude
        movement.end_longitude = end.longitude
        movement.end_at = _naive(end.timestamp) or now
        movement.end_address = end.address

    if "status" in supplied:
        completing = data.status == MovementStatus.COMPLETED and movement.status != MovementStatus.COMPLETED
        movement.status = data.status
        if completing:
            movement.complete(movement.end_at or now)

    movement.updated_at = now
    db.add(movement)
    db.commit()
    db.refresh(movement)

    logger.info("Movement %s updated by identity %s", movement.id, requester.id)
    return movement


def soft_delete(db: DBSession, movement_id: UUID, requester: User) -> Movement:
    """
    Mark a record deleted. Admin only.

    Raises:
        ForbiddenError: Requester is not an admin
        NotFoundError: Unknown or already deleted record
    """
    if not is_admin(requester):
        raise ForbiddenError("Only administrators can delete movements")

    movement = db.get(Movement, movement_id)
    if movement is None or movement.deleted_at is not None:
        raise NotFoundError("Movement not found")

    movement.deleted_at = utcnow()
    movement.updated_at = movement.deleted_at
    db.add(movement)
    db.commit()
    db.refresh(movement)

    logger.info("Movement %s soft-deleted by admin %s", movement.id, requester.id)
    return movement


def soft_delete_user_movements(db: DBSession, user_id: UUID) -> int:
    """Cascade used before an identity is removed."""
    now = utcnow()
    result = db.exec(
        update(Movement)
        .where(Movement.user_id == user_id, not_deleted(Movement))
        .values(deleted_at=now, updated_at=now)
    )
    db.commit()
    return result.rowcount or 0


def soft_delete_old_movements(db: DBSession, older_than: datetime) -> int:
    """Retention sweep: soft-delete active records dated before older_than."""
    now = utcnow()
    result = db.exec(
        update(Movement)
        .where(Movement.date < older_than, not_deleted(Movement))
        .values(deleted_at=now, updated_at=now)
    )
    db.commit()
    return result.rowcount or 0


def user_stats(db: DBSession, user_id: UUID) -> Dict[str, Any]:
    """
    Lifetime totals for one identity and its rank by total distance
    among identities with at least one active record (0 if unranked).
    """
    movements = list(db.exec(
        select(Movement).where(Movement.user_id == user_id, not_deleted(Movement))
    ).all())

    total = len(movements)
    total_distance = sum(m.distance_km or 0 for m in movements)

    ranking = db.exec(
        select(Movement.user_id, func.sum(Movement.distance_km).label("total"))
        .where(not_deleted(Movement))
        .group_by(Movement.user_id)
        .order_by(func.sum(Movement.distance_km).desc())
    ).all()
    position = next((i for i, row in enumerate(ranking, start=1) if row[0] == user_id), 0)

    return {
        "total_movements": total,
        "total_distance": round(total_distance, 2),
        "average_distance": round(total_distance / total, 2) if total else 0,
        "max_speed": round(max((m.max_speed_kmh or 0 for m in movements), default=0), 2),
        "total_duration_minutes": int(math.fsum(m.duration_minutes or 0 for m in movements)),
        "last_activity": max((m.date for m in movements), default=None),
        "ranking_position": position,
    }


def identities_without_movements_since(db: DBSession, since: datetime) -> List[User]:
    """
    Active field staff whose latest active record predates since (or who
    have none). Administrators do not log trips and are never listed.
    """
    recent = select(Movement.user_id).where(Movement.date >= since, not_deleted(Movement))
    statement = select(User).where(
        User.is_active == True,  # noqa: E712
        User.role != Role.ADMIN,
        User.id.not_in(recent),
    )
    return list(db.exec(statement).all())
