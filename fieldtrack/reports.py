"""
FieldTrack - Monthly Movement Report

Builds the monthly spreadsheet (one row per active movement) used by the
admin export endpoint and the scheduled report mail.
"""

import io
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlmodel import Session as DBSession, select

from fieldtrack.auth.dependencies import AuthenticatedUser, require_admin
from fieldtrack.auth.models import Region, User
from fieldtrack.database import get_db, not_deleted
from fieldtrack.movements.models import Movement
from fieldtrack.movements.service import month_bounds


logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

REPORT_COLUMNS = [
    ("User", "user"),
    ("Email", "email"),
    ("Region", "region"),
    ("Transport", "transport"),
    ("Role", "role"),
    ("Date", "date"),
    ("Kind", "kind"),
    ("Status", "status"),
    ("Distance (km)", "distance_km"),
    ("Avg speed (km/h)", "avg_speed_kmh"),
    ("Max speed (km/h)", "max_speed_kmh"),
    ("Duration (min)", "duration_minutes"),
    ("Incidents", "incidents"),
]


def monthly_rows(db: DBSession, month: int, year: int, region: Optional[Region] = None) -> List[Dict]:
    """Flatten the month's active movements joined with their owners."""
    start, end = month_bounds(month, year)
    statement = (
        select(Movement, User)
        .join(User, User.id == Movement.user_id, isouter=True)
        .where(Movement.date >= start, Movement.date < end, not_deleted(Movement))
        .order_by(Movement.date)
    )
    if region is not None:
        statement = statement.where(Movement.region == region)

    rows = []
    for movement, owner in db.exec(statement).all():
        rows.append({
            "user": owner.name if owner else "",
            "email": owner.email if owner else "",
            "region": movement.region.value,
            "transport": movement.transport.value,
            "role": owner.role.value if owner else "",
            "date": movement.date.date().isoformat(),
            "kind": movement.kind.value,
            "status": movement.status.value,
            "distance_km": movement.distance_km,
            "avg_speed_kmh": movement.avg_speed_kmh,
            "max_speed_kmh": movement.max_speed_kmh,
            "duration_minutes": movement.duration_minutes,
            "incidents": len(movement.incidents or []),
        })
    return rows


def build_workbook(rows: List[Dict]) -> bytes:
    """Render rows into an in-memory xlsx document."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Movements"

    sheet.append([title for title, _ in REPORT_COLUMNS])
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for row in rows:
        sheet.append([row.get(key) for _, key in REPORT_COLUMNS])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def report_filename(month: int, year: int, region: Optional[Region] = None) -> str:
    suffix = f"_{region.name.lower()}" if region else ""
    return f"movements_{year}_{month:02d}{suffix}.xlsx"


router = APIRouter(prefix="/admin", tags=["admin"])


def _export(db: DBSession, month: int, year: int, region: Optional[Region]) -> Response:
    rows = monthly_rows(db, month, year, region)
    content = build_workbook(rows)
    filename = report_filename(month, year, region)
    logger.info("Exported %d movements for %02d/%d", len(rows), month, year)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/{month}/{year}", summary="Monthly movement export (xlsx)")
async def export_month(
    month: int,
    year: int,
    admin: AuthenticatedUser = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    return _export(db, month, year, None)


@router.get("/export/{month}/{year}/{region}", summary="Monthly movement export for one region (xlsx)")
async def export_month_region(
    month: int,
    year: int,
    region: Region,
    admin: AuthenticatedUser = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    return _export(db, month, year, region)
