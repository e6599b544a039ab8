"""
Check-in endpoints — geofenced check-in, daily report and manual sweep.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_clock, get_db, require
from roster.core.attendance import CheckinStatus, status_label
from roster.core.clock import Clock
from roster.core.geofence import Coordinates
from roster.core.permissions import AuthContext, Permission
from roster.schemas.attendance import (CheckinRead, CheckinReportResponse,
                                       CheckinRequest, CheckinResponse,
                                       SweepResponse)
from roster.services import attendance
from roster.services.sweep import sweep_missing_checkins

router = APIRouter(prefix="/checkins", tags=["checkins"])


@router.post("", response_model=CheckinResponse)
async def check_in(
    body: CheckinRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> CheckinResponse:
    """Record attendance for one of the caller's slots from a resolved device location."""
    point = None
    if body.location_error is None:
        point = Coordinates(body.latitude, body.longitude)  # type: ignore[arg-type]

    outcome = await attendance.perform_checkin(
        db,
        ctx,
        clock,
        body.schedule_id,
        point,
        failure=body.location_error,
        recorded_at=body.recorded_at,
    )
    checkin = CheckinRead.model_validate(outcome.checkin)
    return CheckinResponse(
        success=True,
        checkin=checkin,
        status_label=status_label(CheckinStatus(checkin.status)),
        distance_meters=round(outcome.distance_meters, 1),
    )


@router.get("/report", response_model=CheckinReportResponse)
async def daily_report(
    day: date | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> dict:
    return await attendance.build_report(db, ctx, clock, day or clock.today())


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    day: date | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> SweepResponse:
    """Mark unattended slots of a closed service day as absent."""
    result = await sweep_missing_checkins(db, clock, day or clock.today())
    return SweepResponse(
        date=result.date,
        ran=result.ran,
        marked_absent=result.marked_absent,
        alerts_created=result.alerts_created,
    )
