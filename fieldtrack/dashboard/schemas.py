"""FieldTrack - Dashboard Response Schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fieldtrack.auth.models import Region, Role, Transport
from fieldtrack.movements.models import Severity


NO_DATA = "No data"


class DashboardStats(BaseModel):
    """
    Headline figures.

    Movement figures cover the caller's visible records; identity counts
    are organisation-wide.
    """
    total_movements: int = 0
    movements_today: int = 0
    movements_week: int = 0
    avg_movements_per_day: float = 0

    total_users: int = 0
    active_users: int = 0
    inactive_users: int = 0

    active_alerts: int = 0
    most_active_region: str = NO_DATA
    most_active_region_movements: int = 0
    safety_compliance: int = 100

    generated_at: datetime


class StatsResponse(BaseModel):
    success: bool = True
    data: DashboardStats


class ActivityItem(BaseModel):
    id: UUID
    user_id: UUID
    user_name: str
    user_role: Optional[Role] = None
    type: str
    description: str
    region: Region
    distance_km: float = 0
    timestamp: datetime


class ActivityResponse(BaseModel):
    success: bool = True
    data: List[ActivityItem]
    total: int


class RegionIdentities(BaseModel):
    region: Region
    total_users: int
    active_users: int


class RegionMovements(BaseModel):
    region: Region
    total_movements: int
    total_distance: float
    avg_speed: float


class TransportMetrics(BaseModel):
    transport: Transport
    count: int
    avg_distance: float


class SeverityCount(BaseModel):
    severity: Severity
    count: int


class DashboardMetrics(BaseModel):
    regions: List[RegionIdentities] = Field(default_factory=list)
    movements_by_region: List[RegionMovements] = Field(default_factory=list)
    transport: List[TransportMetrics] = Field(default_factory=list)
    incidents_by_severity: List[SeverityCount] = Field(default_factory=list)
    generated_at: datetime


class MetricsResponse(BaseModel):
    success: bool = True
    data: DashboardMetrics


class DailyPoint(BaseModel):
    date: str
    count: int
    total_distance: float


class ChartData(BaseModel):
    daily: List[DailyPoint] = Field(default_factory=list)
    days: int


class ChartResponse(BaseModel):
    success: bool = True
    data: ChartData
