"""
FieldTrack - Dashboard Routes

Any authenticated identity; movement figures are scoped to the caller
unless the caller is an admin.

- GET /dashboard/stats            - Headline figures
- GET /dashboard/recent-activity  - Newest records as a feed
- GET /dashboard/metrics          - Region / transport / severity breakdowns
- GET /dashboard/charts           - Per-day series for the last N days
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session as DBSession

from fieldtrack.auth.dependencies import get_current_identity
from fieldtrack.auth.models import User
from fieldtrack.dashboard import service
from fieldtrack.dashboard.schemas import (
    ActivityItem,
    ActivityResponse,
    ChartData,
    ChartResponse,
    DashboardMetrics,
    DashboardStats,
    MetricsResponse,
    StatsResponse,
)
from fieldtrack.database import get_db


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=StatsResponse, summary="Headline figures")
async def stats(
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    logger.debug("Dashboard stats requested by %s", user.id)
    return StatsResponse(data=DashboardStats(**service.overview(db, user)))


@router.get("/recent-activity", response_model=ActivityResponse, summary="Recent activity feed")
async def recent_activity(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    items = [ActivityItem(**entry) for entry in service.recent_activity(db, user, limit=limit)]
    return ActivityResponse(data=items, total=len(items))


@router.get("/metrics", response_model=MetricsResponse, summary="Breakdowns")
async def metrics(
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    return MetricsResponse(data=DashboardMetrics(**service.metrics(db, user)))


@router.get("/charts", response_model=ChartResponse, summary="Per-day series")
async def charts(
    days: int = Query(7, ge=1, le=365),
    user: User = Depends(get_current_identity),
    db: DBSession = Depends(get_db),
):
    return ChartResponse(data=ChartData(daily=service.daily_series(db, user, days=days), days=days))
