"""
FieldTrack - Movement Database Model

One row per tracked trip. Start and end locations are flattened into
columns so aggregates can filter and sort on them; route samples and
incidents are stored as JSON lists.

Soft delete: deleted_at is set instead of removing the row. Default read
paths filter through database.not_deleted(Movement).
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum
from sqlmodel import SQLModel, Field

from fieldtrack.auth.models import Region, Transport
from fieldtrack.datetime_utils import utcnow


class MovementKind(str, Enum):
    SAFETY_PATROL = "safety_patrol"
    ROUTINE_INSPECTION = "routine_inspection"
    EMERGENCY = "emergency"
    MAINTENANCE = "maintenance"


class MovementStatus(str, Enum):
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class IncidentKind(str, Enum):
    RISK_DETECTED = "risk_detected"
    ACCIDENT = "accident"
    EQUIPMENT_FAILURE = "equipment_failure"
    OTHER = "other"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


NOTES_MAX_LENGTH = 500


class Movement(SQLModel, table=True):
    """
    Tracked trip.

    Attributes:
        user_id: Owning identity
        start_at: Timestamp of the start location
        ended_at: Stamped when the trip is completed
        distance_km, avg_speed_kmh, max_speed_kmh: Non-negative
        duration_minutes: Whole minutes between start_at and ended_at
            once completed; client-reported before that
        date: Calendar reference used by the daily/monthly aggregates
        route: Ordered [{latitude, longitude, timestamp}] samples
        incidents: [{kind, description, location, timestamp, severity}]
        deleted_at: Soft-delete marker
    """
    __tablename__ = "movements"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    # No FK: records outlive a deleted owner (soft-deleted, owner id kept)
    user_id: UUID = Field(index=True)

    kind: MovementKind = Field(
        default=MovementKind.SAFETY_PATROL,
        sa_column=Column(SQLEnum(MovementKind), nullable=False, default=MovementKind.SAFETY_PATROL),
    )
    status: MovementStatus = Field(
        default=MovementStatus.STARTED,
        sa_column=Column(SQLEnum(MovementStatus), nullable=False, index=True, default=MovementStatus.STARTED),
    )

    start_latitude: float
    start_longitude: float
    start_at: datetime
    start_address: Optional[str] = Field(default=None, max_length=300)

    end_latitude: Optional[float] = Field(default=None)
    end_longitude: Optional[float] = Field(default=None)
    end_at: Optional[datetime] = Field(default=None)
    end_address: Optional[str] = Field(default=None, max_length=300)

    route: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))

    distance_km: float = Field(default=0)
    avg_speed_kmh: float = Field(default=0)
    max_speed_kmh: float = Field(default=0)
    duration_minutes: int = Field(default=0)

    date: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    ended_at: Optional[datetime] = Field(default=None)

    region: Region = Field(sa_column=Column(SQLEnum(Region), nullable=False, index=True))
    transport: Transport = Field(sa_column=Column(SQLEnum(Transport), nullable=False))

    notes: str = Field(default="", max_length=NOTES_MAX_LENGTH)
    incidents: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))

    deleted_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def start_location(self) -> dict:
        return {
            "latitude": self.start_latitude,
            "longitude": self.start_longitude,
            "timestamp": self.start_at,
            "address": self.start_address,
        }

    def end_location(self) -> Optional[dict]:
        if self.end_latitude is None or self.end_longitude is None:
            return None
        return {
            "latitude": self.end_latitude,
            "longitude": self.end_longitude,
            "timestamp": self.end_at,
            "address": self.end_address,
        }

    def complete(self, ended_at: datetime) -> None:
        """Stamp the end of the trip and recompute the whole-minute duration."""
        self.ended_at = ended_at
        elapsed = (ended_at - self.start_at).total_seconds() / 60
        self.duration_minutes = max(int(round(elapsed)), 0)
