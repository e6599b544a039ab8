"""
Schedule endpoints — duty slots with the double-booking guard.

- ``/schedules/mine`` is open to every active user.
- Listing is restricted to led departments unless the caller has ``view_all``.
- Writes require ``manage_department_schedules`` on the target department.
"""

from __future__ import annotations

from datetime import date, time

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_conflict_strategy, get_db, require
from roster.core.conflicts import ConflictStrategy
from roster.core.exceptions import PermissionDenied, ValidationError
from roster.core.permissions import AuthContext, Permission, permitted
from roster.models.schedule import Schedule
from roster.schemas.roster import (ConflictCheckResponse, DeleteResponse,
                                   ScheduleCreate, ScheduleRead,
                                   ScheduleUpdate)
from roster.services import scheduling

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/mine", response_model=list[ScheduleRead])
async def my_schedules(
    day: date | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> list[Schedule]:
    return await scheduling.list_own_schedules(db, ctx, day)


@router.get("", response_model=list[ScheduleRead])
async def list_schedules(
    day: date | None = Query(None, alias="date"),
    department_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> list[Schedule]:
    return await scheduling.list_visible_schedules(db, ctx, day, department_id)


@router.get("/conflicts", response_model=ConflictCheckResponse)
async def check_conflict(
    member_id: int = Query(...),
    day: date = Query(..., alias="date"),
    exclude_schedule_id: int | None = Query(None),
    start_time: time | None = Query(None),
    end_time: time | None = Query(None),
    db: AsyncSession = Depends(get_db),
    strategy: ConflictStrategy = Depends(get_conflict_strategy),
    _ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_SCHEDULES)),
) -> ConflictCheckResponse:
    """Ask whether a member is free before submitting a schedule."""
    if (start_time is None) != (end_time is None):
        raise ValidationError("start_time and end_time must be given together")
    outcome, department = await scheduling.check_conflict(
        db,
        strategy,
        member_id,
        day,
        exclude_schedule_id=exclude_schedule_id,
        start_time=start_time,
        end_time=end_time,
    )
    return ConflictCheckResponse(
        conflict=outcome.conflict,
        department_id=department.id if department else None,
        department_name=department.name if department else None,
    )


@router.get("/{schedule_id}", response_model=ScheduleRead)
async def get_schedule(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> Schedule:
    schedule = await scheduling.get_schedule(db, schedule_id)
    visible = (
        schedule.member_id == ctx.member_id
        or permitted(ctx.role, Permission.VIEW_ALL)
        or schedule.department_id in ctx.led_department_ids
    )
    if not visible:
        raise PermissionDenied("You cannot view this schedule")
    return schedule


@router.post("", response_model=ScheduleRead, status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
    strategy: ConflictStrategy = Depends(get_conflict_strategy),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_SCHEDULES)),
) -> Schedule:
    return await scheduling.create_schedule(db, ctx, strategy, body.model_dump())


@router.put("/{schedule_id}", response_model=ScheduleRead)
async def update_schedule(
    schedule_id: int,
    body: ScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    strategy: ConflictStrategy = Depends(get_conflict_strategy),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_SCHEDULES)),
) -> Schedule:
    return await scheduling.update_schedule(
        db, ctx, strategy, schedule_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/{schedule_id}", response_model=DeleteResponse)
async def delete_schedule(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_SCHEDULES)),
) -> DeleteResponse:
    await scheduling.delete_schedule(db, ctx, schedule_id)
    return DeleteResponse(success=True, message="Schedule deleted")
