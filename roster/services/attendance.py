"""
Check-in orchestration and the daily attendance report.

A check-in attempt passes through, in order: authorization, slot lookup,
day check, the deadline gate, location resolution and the geofence.  Only
when every gate passes is the slot's single ``checkins`` row written
(inserted the first time, updated in place afterwards).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roster.core.attendance import (CheckinStatus, classify_checkin,
                                    derive_status, is_checkin_allowed,
                                    parse_hhmm, status_color, status_label)
from roster.core.clock import Clock
from roster.core.config import settings
from roster.core.exceptions import (CheckinWindowClosed, LocationUnavailable,
                                    OutsideFence, PermissionDenied,
                                    ValidationError)
from roster.core.geofence import (Coordinates, LocationFailure, distance,
                                  format_distance, is_within_fence)
from roster.core.permissions import AuthContext, Permission, ensure_access, permitted
from roster.models.checkin import Checkin
from roster.models.checkin_settings import CheckinSettings
from roster.models.department import Department, Position
from roster.models.member import Member
from roster.models.schedule import Schedule
from roster.services.scheduling import get_schedule

logger = logging.getLogger(__name__)


async def get_checkin_settings(db: AsyncSession) -> CheckinSettings:
    """Fetch the singleton settings row, creating it from the environment if absent."""
    result = await db.execute(select(CheckinSettings).limit(1))
    conf = result.scalar_one_or_none()
    if conf is None:
        conf = CheckinSettings(
            id=1,
            checkin_deadline=settings.CHECKIN_DEADLINE,
            service_end_time=settings.SERVICE_END_TIME,
            fence_latitude=settings.FENCE_LATITUDE,
            fence_longitude=settings.FENCE_LONGITUDE,
            fence_radius_meters=settings.FENCE_RADIUS_METERS,
        )
        db.add(conf)
        await db.commit()
        await db.refresh(conf)
        logger.info("Created default check-in settings")
    return conf


async def update_checkin_settings(db: AsyncSession, ctx: AuthContext, changes: dict) -> CheckinSettings:
    ensure_access(ctx, Permission.MANAGE_ALL)
    conf = await get_checkin_settings(db)
    for field, value in changes.items():
        setattr(conf, field, value)

    if parse_hhmm(conf.checkin_deadline) > parse_hhmm(conf.service_end_time):
        await db.rollback()
        raise ValidationError("The check-in deadline must not be after the service end time")

    await db.commit()
    await db.refresh(conf)
    logger.info("Check-in settings updated by user %d: %s", ctx.user_id, changes)
    return conf


@dataclass(frozen=True)
class CheckinOutcome:
    checkin: Checkin
    distance_meters: float


def _local(moment: datetime, now: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=now.tzinfo)
    return moment.astimezone(now.tzinfo)


async def _upsert_checkin(db: AsyncSession, schedule: Schedule, values: dict) -> Checkin:
    result = await db.execute(select(Checkin).where(Checkin.schedule_id == schedule.id))
    checkin = result.scalar_one_or_none()
    if checkin is None:
        checkin = Checkin(
            schedule_id=schedule.id,
            member_id=schedule.member_id,
            department_id=schedule.department_id,
            date=schedule.date,
            **values,
        )
        db.add(checkin)
    else:
        for field, value in values.items():
            setattr(checkin, field, value)
    await db.commit()
    await db.refresh(checkin)
    return checkin


async def perform_checkin(
    db: AsyncSession,
    ctx: AuthContext,
    clock: Clock,
    schedule_id: int,
    point: Coordinates | None,
    failure: LocationFailure | None = None,
    recorded_at: datetime | None = None,
) -> CheckinOutcome:
    ensure_access(ctx, Permission.VIEW_OWN_SCHEDULES)
    if recorded_at is not None and not permitted(ctx.role, Permission.MANAGE_ALL):
        raise PermissionDenied("Only administrators can record replayed check-ins")

    schedule = await get_schedule(db, schedule_id)
    if schedule.member_id != ctx.member_id and not permitted(ctx.role, Permission.MANAGE_ALL):
        raise PermissionDenied("You can only check in to your own schedules")

    now = clock.now()
    if schedule.date != now.date():
        raise ValidationError("Check-in is only possible on the scheduled day")
    if recorded_at is not None and _local(recorded_at, now).date() != schedule.date:
        raise ValidationError("Recorded check-in time must fall on the scheduled day")

    conf = await get_checkin_settings(db)
    deadline = parse_hhmm(conf.checkin_deadline)
    if not is_checkin_allowed(now, deadline):
        raise CheckinWindowClosed(conf.checkin_deadline)

    if failure is not None:
        raise LocationUnavailable(LocationFailure(failure).value)
    if point is None:
        raise LocationUnavailable(LocationFailure.UNAVAILABLE.value)

    center = Coordinates(conf.fence_latitude, conf.fence_longitude)
    meters = distance(point, center)
    if not is_within_fence(point, center, conf.fence_radius_meters):
        logger.info(
            "Check-in for schedule %d rejected: %.1fm from fence center (radius %.1fm)",
            schedule.id,
            meters,
            conf.fence_radius_meters,
        )
        raise OutsideFence(meters, format_distance(meters))

    checkin_time = _local(recorded_at, now) if recorded_at is not None else now
    status = classify_checkin(checkin_time, deadline)
    values = {
        "checkin_time": checkin_time,
        "status": status.value,
        "latitude": point.latitude,
        "longitude": point.longitude,
        "location_validated": True,
    }

    try:
        checkin = await _upsert_checkin(db, schedule, values)
    except IntegrityError:
        # A concurrent attempt inserted the row first; apply ours as the update.
        await db.rollback()
        schedule = await get_schedule(db, schedule_id)
        checkin = await _upsert_checkin(db, schedule, values)

    logger.info(
        "Check-in %s for schedule %d (member %d) at %s",
        status.value,
        schedule.id,
        schedule.member_id,
        checkin_time.strftime("%H:%M"),
    )
    return CheckinOutcome(checkin=checkin, distance_meters=meters)


# ── Report ──────────────────────────────────────────────────────────
async def build_report(db: AsyncSession, ctx: AuthContext, clock: Clock, day: date) -> dict:
    """Every slot of ``day`` with its derived attendance status."""
    query = (
        select(Schedule, Member.name, Department.name, Position.name, Checkin)
        .join(Member, Schedule.member_id == Member.id)
        .join(Department, Schedule.department_id == Department.id)
        .join(Position, Schedule.position_id == Position.id)
        .outerjoin(Checkin, Checkin.schedule_id == Schedule.id)
        .where(Schedule.date == day)
        .order_by(Department.name, Member.name)
    )
    if not permitted(ctx.role, Permission.VIEW_ALL):
        query = query.where(Schedule.department_id.in_(ctx.led_department_ids or {-1}))

    conf = await get_checkin_settings(db)
    service_end = parse_hhmm(conf.service_end_time)
    now = clock.now()

    entries = []
    for schedule, member_name, department_name, position_name, checkin in (await db.execute(query)).all():
        status = derive_status(checkin.status if checkin else None, day, now, service_end)
        entries.append(
            {
                "schedule_id": schedule.id,
                "member_id": schedule.member_id,
                "member_name": member_name,
                "department_id": schedule.department_id,
                "department_name": department_name,
                "position_name": position_name,
                "status": status,
                "status_label": status_label(status),
                "status_color": status_color(status),
                "checkin_time": checkin.checkin_time if checkin else None,
            }
        )

    counts = Counter(e["status"].value for e in entries)
    return {
        "date": day,
        "total": len(entries),
        "counts": {s.value: counts.get(s.value, 0) for s in CheckinStatus},
        "entries": entries,
    }
