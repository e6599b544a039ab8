"""
Schedule orchestration — authorization, reference checks and conflict detection.

The conflict pre-check gives the caller a precise answer (which department
already holds the member that day); the unique day lock on ``schedules`` is
what actually guarantees exclusivity when two writes race.  Both outcomes
surface as ``ScheduleConflict``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roster.core.conflicts import (ConflictResult, ConflictStrategy,
                                   DayExclusiveStrategy, Slot, find_conflict)
from roster.core.exceptions import (NotFound, PermissionDenied,
                                    ScheduleConflict, ValidationError)
from roster.core.permissions import (AuthContext, Permission,
                                     ensure_department_access, permitted)
from roster.models.department import Department, Position
from roster.models.member import Member
from roster.models.schedule import Schedule

logger = logging.getLogger(__name__)

_WRITABLE_FIELDS = ("member_id", "department_id", "position_id", "date", "start_time", "end_time", "notes")


def to_slot(schedule: Schedule) -> Slot:
    return Slot(
        schedule_id=schedule.id,
        member_id=schedule.member_id,
        date=schedule.date,
        department_id=schedule.department_id,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
    )


async def get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    result = await db.execute(select(Schedule).where(Schedule.id == schedule_id))
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise NotFound("Schedule not found")
    return schedule


async def check_conflict(
    db: AsyncSession,
    strategy: ConflictStrategy,
    member_id: int,
    day: date,
    exclude_schedule_id: int | None = None,
    start_time=None,
    end_time=None,
) -> tuple[ConflictResult, Department | None]:
    """Run the conflict detector against the member's slots on ``day``."""
    query = select(Schedule).where(Schedule.member_id == member_id, Schedule.date == day)
    if exclude_schedule_id is not None:
        query = query.where(Schedule.id != exclude_schedule_id)
    result = await db.execute(query.order_by(Schedule.id))
    existing = [to_slot(s) for s in result.scalars().all()]

    candidate = Slot(
        schedule_id=exclude_schedule_id,
        member_id=member_id,
        date=day,
        start_time=start_time,
        end_time=end_time,
    )
    outcome = find_conflict(strategy, existing, candidate)
    if not outcome.conflict or outcome.slot is None:
        return outcome, None

    department = await db.execute(
        select(Department).where(Department.id == outcome.slot.department_id)
    )
    return outcome, department.scalar_one_or_none()


async def _validate_references(db: AsyncSession, member_id: int, department_id: int, position_id: int) -> None:
    member = await db.execute(select(Member.id).where(Member.id == member_id))
    if member.scalar_one_or_none() is None:
        raise NotFound("Member not found")

    department = await db.execute(select(Department.id).where(Department.id == department_id))
    if department.scalar_one_or_none() is None:
        raise NotFound("Department not found")

    position = await db.execute(select(Position).where(Position.id == position_id))
    pos = position.scalar_one_or_none()
    if pos is None:
        raise NotFound("Position not found")
    if pos.department_id != department_id:
        raise ValidationError("Position does not belong to the selected department")


async def _raise_if_conflict(db: AsyncSession, strategy: ConflictStrategy, schedule: Schedule) -> None:
    outcome, department = await check_conflict(
        db,
        strategy,
        schedule.member_id,
        schedule.date,
        exclude_schedule_id=schedule.id,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
    )
    if outcome.conflict:
        name = department.name if department else None
        logger.info(
            "Schedule conflict for member %d on %s (already in %s)",
            schedule.member_id,
            schedule.date,
            name,
        )
        raise ScheduleConflict(name)


async def _commit_schedule(db: AsyncSession, schedule: Schedule) -> Schedule:
    member_id, day, schedule_id = schedule.member_id, schedule.date, schedule.id
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # Lost a race against a concurrent write for the same member/day.
        outcome, department = await check_conflict(
            db, DayExclusiveStrategy(), member_id, day, exclude_schedule_id=schedule_id
        )
        if outcome.conflict:
            raise ScheduleConflict(department.name if department else None) from None
        raise
    await db.refresh(schedule)
    return schedule


def _apply_day_lock(strategy: ConflictStrategy, schedule: Schedule) -> None:
    schedule.exclusive_day = schedule.date if isinstance(strategy, DayExclusiveStrategy) else None


# ── Commands ────────────────────────────────────────────────────────
async def create_schedule(
    db: AsyncSession,
    ctx: AuthContext,
    strategy: ConflictStrategy,
    data: dict[str, Any],
) -> Schedule:
    if not permitted(ctx.role, Permission.MANAGE_DEPARTMENT_SCHEDULES):
        raise PermissionDenied()
    ensure_department_access(ctx, data["department_id"])
    await _validate_references(db, data["member_id"], data["department_id"], data["position_id"])

    schedule = Schedule(**{k: data.get(k) for k in _WRITABLE_FIELDS})
    await _raise_if_conflict(db, strategy, schedule)

    _apply_day_lock(strategy, schedule)
    db.add(schedule)
    schedule = await _commit_schedule(db, schedule)
    logger.info(
        "Created schedule %d: member %d, department %d on %s",
        schedule.id,
        schedule.member_id,
        schedule.department_id,
        schedule.date,
    )
    return schedule


async def update_schedule(
    db: AsyncSession,
    ctx: AuthContext,
    strategy: ConflictStrategy,
    schedule_id: int,
    changes: dict[str, Any],
) -> Schedule:
    if not permitted(ctx.role, Permission.MANAGE_DEPARTMENT_SCHEDULES):
        raise PermissionDenied()
    schedule = await get_schedule(db, schedule_id)
    ensure_department_access(ctx, schedule.department_id)
    if "department_id" in changes and changes["department_id"] is not None:
        ensure_department_access(ctx, changes["department_id"])

    for field in _WRITABLE_FIELDS:
        if field in changes and (changes[field] is not None or field in ("notes", "start_time", "end_time")):
            setattr(schedule, field, changes[field])

    if (schedule.start_time is None) != (schedule.end_time is None):
        raise ValidationError("start_time and end_time must be given together")
    if schedule.start_time is not None and schedule.start_time >= schedule.end_time:
        raise ValidationError("start_time must be before end_time")

    # Pending edits must not hit the day lock before the detector has spoken.
    with db.no_autoflush:
        await _validate_references(db, schedule.member_id, schedule.department_id, schedule.position_id)
        # The candidate excludes itself, so editing in place never self-conflicts.
        await _raise_if_conflict(db, strategy, schedule)

    _apply_day_lock(strategy, schedule)
    schedule = await _commit_schedule(db, schedule)
    logger.info("Updated schedule %d", schedule.id)
    return schedule


async def delete_schedule(db: AsyncSession, ctx: AuthContext, schedule_id: int) -> Schedule:
    if not permitted(ctx.role, Permission.MANAGE_DEPARTMENT_SCHEDULES):
        raise PermissionDenied()
    schedule = await get_schedule(db, schedule_id)
    ensure_department_access(ctx, schedule.department_id)
    await db.delete(schedule)
    await db.commit()
    logger.info("Deleted schedule %d", schedule_id)
    return schedule


# ── Queries ─────────────────────────────────────────────────────────
async def list_own_schedules(db: AsyncSession, ctx: AuthContext, day: date | None = None) -> list[Schedule]:
    if ctx.member_id is None:
        return []
    query = select(Schedule).where(Schedule.member_id == ctx.member_id)
    if day is not None:
        query = query.where(Schedule.date == day)
    result = await db.execute(query.order_by(Schedule.date.desc()))
    return list(result.scalars().all())


async def list_visible_schedules(
    db: AsyncSession,
    ctx: AuthContext,
    day: date | None = None,
    department_id: int | None = None,
) -> list[Schedule]:
    """Admins see everything; leaders only the departments they lead."""
    query = select(Schedule)
    if not permitted(ctx.role, Permission.VIEW_ALL):
        if not ctx.led_department_ids:
            return []
        query = query.where(Schedule.department_id.in_(ctx.led_department_ids))
    if day is not None:
        query = query.where(Schedule.date == day)
    if department_id is not None:
        query = query.where(Schedule.department_id == department_id)
    result = await db.execute(query.order_by(Schedule.date.desc(), Schedule.id))
    return list(result.scalars().all())
