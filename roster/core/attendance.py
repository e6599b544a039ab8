"""
Attendance state machine for a single duty slot.

    pending ──check-in (≤ deadline)──▶ on_time
    pending ──check-in (recorded > deadline)──▶ late
    pending ──sweep (after service end)──▶ absent

Acceptance and classification are separate gates: a request is accepted
by comparing the *clock* against the deadline, while the stored status is
derived from the *recorded* check-in time.  For live check-ins both are the
same instant; replayed check-ins carry their own recorded time.

All comparisons happen at minute resolution on local time-of-day.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, time
from types import MappingProxyType
from typing import Mapping


class CheckinStatus(str, enum.Enum):
    PENDING = "pending"
    ON_TIME = "on_time"
    LATE = "late"
    ABSENT = "absent"


STATUS_LABELS: Mapping[CheckinStatus, str] = MappingProxyType(
    {
        CheckinStatus.PENDING: "Aguardando",
        CheckinStatus.ON_TIME: "Adimplente",
        CheckinStatus.LATE: "Atraso",
        CheckinStatus.ABSENT: "Faltoso",
    }
)

STATUS_COLORS: Mapping[CheckinStatus, str] = MappingProxyType(
    {
        CheckinStatus.PENDING: "bg-gray-400",
        CheckinStatus.ON_TIME: "bg-green-500",
        CheckinStatus.LATE: "bg-yellow-500",
        CheckinStatus.ABSENT: "bg-red-500",
    }
)

def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def minutes_of_day(value: datetime | time) -> int:
    return value.hour * 60 + value.minute


def is_checkin_allowed(now: datetime, deadline: time) -> bool:
    return minutes_of_day(now) <= minutes_of_day(deadline)


def classify_checkin(checkin_time: datetime, deadline: time) -> CheckinStatus:
    if minutes_of_day(checkin_time) <= minutes_of_day(deadline):
        return CheckinStatus.ON_TIME
    return CheckinStatus.LATE


def is_sweep_due(slot_date: date, now: datetime, service_end: time) -> bool:
    """True once the service window of ``slot_date`` has closed."""
    today = now.date()
    if slot_date < today:
        return True
    if slot_date > today:
        return False
    return minutes_of_day(now) >= minutes_of_day(service_end)


def derive_status(
    recorded: CheckinStatus | str | None,
    slot_date: date,
    now: datetime,
    service_end: time,
) -> CheckinStatus:
    """Status to display for a slot, before or after the sweep has run."""
    if recorded is not None and CheckinStatus(recorded) is not CheckinStatus.PENDING:
        return CheckinStatus(recorded)
    if is_sweep_due(slot_date, now, service_end):
        return CheckinStatus.ABSENT
    return CheckinStatus.PENDING


def status_label(status: CheckinStatus | str) -> str:
    return STATUS_LABELS[CheckinStatus(status)]


def status_color(status: CheckinStatus | str) -> str:
    return STATUS_COLORS[CheckinStatus(status)]
