"""
FieldTrack - Movement Request/Response Schemas

Input models are validated inside the service layer (not only by the
router), so jobs and tests calling the service get the same rules.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fieldtrack.auth.models import Region, Transport
from fieldtrack.movements.models import (
    NOTES_MAX_LENGTH,
    IncidentKind,
    Movement,
    MovementKind,
    MovementStatus,
    Severity,
)


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Location(Coordinates):
    timestamp: Optional[datetime] = None
    address: Optional[str] = Field(default=None, max_length=300)


class RouteSample(Coordinates):
    timestamp: Optional[datetime] = None


class Incident(BaseModel):
    kind: IncidentKind
    description: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)
    location: Optional[Coordinates] = None
    timestamp: Optional[datetime] = None
    severity: Severity = Severity.MEDIUM


class MovementCreate(BaseModel):
    """
    Payload for registering a trip.

    user_id is honoured only for admin callers registering on behalf of
    another identity.
    """
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[UUID] = None
    kind: MovementKind = MovementKind.SAFETY_PATROL
    status: Optional[MovementStatus] = None
    start_location: Location
    end_location: Optional[Location] = None
    route: List[RouteSample] = Field(default_factory=list)
    distance_km: float = Field(..., ge=0)
    avg_speed_kmh: float = Field(..., ge=0)
    max_speed_kmh: float = Field(..., ge=0)
    duration_minutes: float = Field(..., ge=0)
    date: datetime
    region: Region
    transport: Optional[Transport] = None
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)
    incidents: List[Incident] = Field(default_factory=list)


class MovementPatch(BaseModel):
    """Allow-listed fields of a movement update; everything is optional."""
    model_config = ConfigDict(extra="ignore")

    distance_km: Optional[float] = Field(default=None, ge=0)
    avg_speed_kmh: Optional[float] = Field(default=None, ge=0)
    max_speed_kmh: Optional[float] = Field(default=None, ge=0)
    duration_minutes: Optional[float] = Field(default=None, ge=0)
    date: Optional[datetime] = None
    region: Optional[Region] = None
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)
    end_location: Optional[Location] = None
    incidents: Optional[List[Incident]] = None
    route: Optional[List[RouteSample]] = None
    status: Optional[MovementStatus] = None


class OwnerSummary(BaseModel):
    """Public fields of the owning identity."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    region: Region


class MovementRead(BaseModel):
    id: UUID
    user_id: UUID
    kind: MovementKind
    status: MovementStatus
    start_location: Location
    end_location: Optional[Location] = None
    route: List[RouteSample]
    distance_km: float
    avg_speed_kmh: float
    max_speed_kmh: float
    duration_minutes: int
    date: datetime
    ended_at: Optional[datetime] = None
    region: Region
    transport: Transport
    notes: str
    incidents: List[Incident]
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    owner: Optional[OwnerSummary] = None

    @classmethod
    def from_movement(cls, movement: Movement, owner=None) -> "MovementRead":
        return cls(
            id=movement.id,
            user_id=movement.user_id,
            kind=movement.kind,
            status=movement.status,
            start_location=movement.start_location(),
            end_location=movement.end_location(),
            route=movement.route or [],
            distance_km=movement.distance_km,
            avg_speed_kmh=movement.avg_speed_kmh,
            max_speed_kmh=movement.max_speed_kmh,
            duration_minutes=movement.duration_minutes,
            date=movement.date,
            ended_at=movement.ended_at,
            region=movement.region,
            transport=movement.transport,
            notes=movement.notes or "",
            incidents=movement.incidents or [],
            deleted_at=movement.deleted_at,
            created_at=movement.created_at,
            updated_at=movement.updated_at,
            owner=OwnerSummary.model_validate(owner) if owner is not None else None,
        )


class MovementResponse(BaseModel):
    success: bool = True
    message: str
    data: MovementRead
    warnings: List[str] = Field(default_factory=list)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int


class MovementListResponse(BaseModel):
    success: bool = True
    data: List[MovementRead]
    pagination: Optional[Pagination] = None
    total: int


class DailyAggregate(BaseModel):
    """Per-day projection; zero-valued when no record matches."""
    success: bool = True
    date: str
    count: int = 0
    total_distance: float = 0
    avg_average_speed: float = 0
    max_max_speed: float = 0
    records: List[MovementRead] = Field(default_factory=list)


class MonthlyAggregate(BaseModel):
    """Per-month projection; zero-valued when no record matches."""
    success: bool = True
    month: int
    year: int
    count: int = 0
    total_distance: float = 0
    avg_average_speed: float = 0
    max_max_speed: float = 0
    total_duration_minutes: int = 0
    completed: int = 0
    incidents_reported: int = 0
    locations: List[Location] = Field(default_factory=list)


class UserStats(BaseModel):
    success: bool = True
    total_movements: int = 0
    total_distance: float = 0
    average_distance: float = 0
    max_speed: float = 0
    total_duration_minutes: int = 0
    last_activity: Optional[datetime] = None
    ranking_position: int = 0
