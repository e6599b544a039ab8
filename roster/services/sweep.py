"""
Missing check-in sweep.

Once the service window of a date has closed, every slot of that date
without a recorded check-in becomes ``absent`` and one ``missing_checkin``
alert per member and day is raised for the slot's department.  Running it
again changes nothing: slots already marked keep their row and the alert
uniqueness key stops duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roster.core.attendance import CheckinStatus, is_sweep_due, parse_hhmm
from roster.core.clock import Clock
from roster.models.alert import Alert
from roster.models.checkin import Checkin
from roster.models.department import Department
from roster.models.member import Member
from roster.models.schedule import Schedule
from roster.services.attendance import get_checkin_settings

logger = logging.getLogger(__name__)

MISSING_CHECKIN = "missing_checkin"


@dataclass(frozen=True)
class SweepResult:
    date: date
    ran: bool
    marked_absent: int = 0
    alerts_created: int = 0


async def _sweep_once(db: AsyncSession, day: date) -> SweepResult:
    rows = (
        await db.execute(
            select(Schedule, Member.name, Department.name)
            .join(Member, Schedule.member_id == Member.id)
            .join(Department, Schedule.department_id == Department.id)
            .where(Schedule.date == day)
            .order_by(Schedule.id)
        )
    ).all()

    checkins = {
        c.schedule_id: c
        for c in (await db.execute(select(Checkin).where(Checkin.date == day))).scalars().all()
    }
    alerted = set(
        (
            await db.execute(
                select(Alert.member_id).where(Alert.type == MISSING_CHECKIN, Alert.date == day)
            )
        ).scalars().all()
    )

    marked = 0
    alerts = 0
    for schedule, member_name, department_name in rows:
        checkin = checkins.get(schedule.id)
        if checkin is not None and checkin.checkin_time is not None:
            continue

        if checkin is None:
            db.add(
                Checkin(
                    schedule_id=schedule.id,
                    member_id=schedule.member_id,
                    department_id=schedule.department_id,
                    date=day,
                    status=CheckinStatus.ABSENT.value,
                )
            )
            marked += 1
        elif checkin.status != CheckinStatus.ABSENT.value:
            checkin.status = CheckinStatus.ABSENT.value
            marked += 1

        if schedule.member_id not in alerted:
            db.add(
                Alert(
                    type=MISSING_CHECKIN,
                    title="Check-in não realizado",
                    message=(
                        f"{member_name} não realizou check-in para o serviço "
                        f"no departamento {department_name}."
                    ),
                    target_user_id=None,
                    department_id=schedule.department_id,
                    member_id=schedule.member_id,
                    date=day,
                )
            )
            alerted.add(schedule.member_id)
            alerts += 1

    await db.commit()
    return SweepResult(date=day, ran=True, marked_absent=marked, alerts_created=alerts)


async def sweep_missing_checkins(db: AsyncSession, clock: Clock, day: date) -> SweepResult:
    conf = await get_checkin_settings(db)
    if not is_sweep_due(day, clock.now(), parse_hhmm(conf.service_end_time)):
        return SweepResult(date=day, ran=False)

    try:
        result = await _sweep_once(db, day)
    except IntegrityError:
        # Another sweep or a check-in committed first; its rows are now visible.
        await db.rollback()
        logger.warning("Concurrent write during sweep of %s, retrying", day)
        result = await _sweep_once(db, day)

    if result.marked_absent or result.alerts_created:
        logger.info(
            "Sweep %s: %d slot(s) marked absent, %d alert(s) raised",
            day,
            result.marked_absent,
            result.alerts_created,
        )
    return result
