"""
FieldTrack - Dashboard Figures

Read-only aggregates behind the dashboard views. Movement figures reuse
the movement recorder's caller scoping, so non-admins only ever see
their own records. Incidents live in a JSON column and are tallied in
Python; everything else is aggregated in SQL.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.models import User
from fieldtrack.dashboard.schemas import NO_DATA
from fieldtrack.datetime_utils import utcnow
from fieldtrack.movements.models import Movement, MovementStatus, Severity
from fieldtrack.movements.service import scoped


ALERT_SEVERITIES = {Severity.HIGH.value, Severity.CRITICAL.value}
ALERT_WINDOW_DAYS = 7


def _count(db: DBSession, requester: User, *conditions) -> int:
    statement = scoped(select(func.count()).select_from(Movement), requester)
    if conditions:
        statement = statement.where(*conditions)
    return db.exec(statement).one() or 0


def _has_alert(incidents: Optional[Iterable[dict]]) -> bool:
    return any((i or {}).get("severity") in ALERT_SEVERITIES for i in incidents or [])


def overview(db: DBSession, requester: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Headline figures: today/week/total counts, identity counts, alerts
    raised in the last week, busiest region and safety compliance.

    Compliance is the share of visible records not counted as an alert,
    rounded to a whole percentage (100 with no records).
    """
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = now - timedelta(days=ALERT_WINDOW_DAYS)

    total = _count(db, requester)
    today_count = _count(db, requester, Movement.date >= today, Movement.date < today + timedelta(days=1))
    week_count = _count(db, requester, Movement.date >= week_start)

    total_users, active_users = db.exec(
        select(func.count(User.id), func.coalesce(func.sum(case((User.is_active == True, 1), else_=0)), 0))  # noqa: E712
    ).one()

    recent_incidents = db.exec(
        scoped(select(Movement.incidents), requester).where(Movement.date >= week_start)
    ).all()
    alerts = sum(1 for incidents in recent_incidents if _has_alert(incidents))

    busiest = db.exec(
        scoped(select(Movement.region, func.count(Movement.id).label("total")), requester)
        .group_by(Movement.region)
        .order_by(func.count(Movement.id).desc())
        .limit(1)
    ).first()

    return {
        "total_movements": total,
        "movements_today": today_count,
        "movements_week": week_count,
        "avg_movements_per_day": round(week_count / ALERT_WINDOW_DAYS, 1),
        "total_users": total_users or 0,
        "active_users": int(active_users or 0),
        "inactive_users": (total_users or 0) - int(active_users or 0),
        "active_alerts": alerts,
        "most_active_region": busiest[0].value if busiest else NO_DATA,
        "most_active_region_movements": busiest[1] if busiest else 0,
        "safety_compliance": round((total - alerts) / total * 100) if total else 100,
        "generated_at": now,
    }


def _activity_type(movement: Movement):
    kind = movement.kind.value.replace("_", " ")
    if movement.status == MovementStatus.COMPLETED:
        return "movement_completed", f"Completed {kind}"
    if movement.status in (MovementStatus.STARTED, MovementStatus.IN_PROGRESS):
        return "movement_started", f"Started {kind}"
    if movement.incidents:
        return "incident_reported", f"Reported {len(movement.incidents)} incident(s)"
    return "movement_updated", f"{kind.capitalize()} {movement.status.value}"


def recent_activity(db: DBSession, requester: User, limit: int = 10) -> List[Dict[str, Any]]:
    """Newest visible records as activity feed entries, owner resolved."""
    movements = db.exec(
        scoped(select(Movement), requester).order_by(Movement.date.desc()).limit(limit)
    ).all()

    owner_ids = {m.user_id for m in movements}
    owners = {}
    if owner_ids:
        owners = {u.id: u for u in db.exec(select(User).where(User.id.in_(owner_ids))).all()}

    feed = []
    for movement in movements:
        owner = owners.get(movement.user_id)
        kind, description = _activity_type(movement)
        feed.append({
            "id": movement.id,
            "user_id": movement.user_id,
            "user_name": owner.name if owner else "Unknown user",
            "user_role": owner.role if owner else None,
            "type": kind,
            "description": description,
            "region": movement.region,
            "distance_km": movement.distance_km or 0,
            "timestamp": movement.date,
        })
    return feed


def metrics(db: DBSession, requester: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Breakdowns by region (identities and records), transport and incident severity."""
    region_identities = db.exec(
        select(
            User.region,
            func.count(User.id),
            func.coalesce(func.sum(case((User.is_active == True, 1), else_=0)), 0),  # noqa: E712
        )
        .group_by(User.region)
        .order_by(func.count(User.id).desc())
    ).all()

    region_movements = db.exec(
        scoped(
            select(
                Movement.region,
                func.count(Movement.id),
                func.coalesce(func.sum(Movement.distance_km), 0),
                func.coalesce(func.avg(Movement.avg_speed_kmh), 0),
            ),
            requester,
        )
        .group_by(Movement.region)
        .order_by(func.count(Movement.id).desc())
    ).all()

    transport = db.exec(
        scoped(
            select(
                Movement.transport,
                func.count(Movement.id),
                func.coalesce(func.avg(Movement.distance_km), 0),
            ),
            requester,
        )
        .group_by(Movement.transport)
        .order_by(func.count(Movement.id).desc())
    ).all()

    severities = Counter()
    for incidents in db.exec(scoped(select(Movement.incidents), requester)).all():
        for incident in incidents or []:
            severity = (incident or {}).get("severity")
            if severity:
                severities[severity] += 1

    return {
        "regions": [
            {"region": region, "total_users": total, "active_users": int(active)}
            for region, total, active in region_identities
        ],
        "movements_by_region": [
            {
                "region": region,
                "total_movements": count,
                "total_distance": round(float(distance), 2),
                "avg_speed": round(float(speed), 2),
            }
            for region, count, distance, speed in region_movements
        ],
        "transport": [
            {"transport": kind, "count": count, "avg_distance": round(float(distance), 2)}
            for kind, count, distance in transport
        ],
        "incidents_by_severity": [
            {"severity": severity, "count": count}
            for severity, count in severities.most_common()
        ],
        "generated_at": now or utcnow(),
    }


def daily_series(db: DBSession, requester: User, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Per-calendar-day count and distance for the last days, oldest first; empty days omitted."""
    since = (now or utcnow()) - timedelta(days=days)
    day = func.date(Movement.date)
    rows = db.exec(
        scoped(
            select(day, func.count(Movement.id), func.coalesce(func.sum(Movement.distance_km), 0)),
            requester,
        )
        .where(Movement.date >= since)
        .group_by(day)
        .order_by(day)
    ).all()
    return [
        {"date": str(value), "count": count, "total_distance": round(float(distance), 2)}
        for value, count, distance in rows
    ]
