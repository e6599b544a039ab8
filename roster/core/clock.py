"""Injected time source.

Attendance decisions read the current moment only through a ``Clock`` so
tests (and replays) can run at any simulated local time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


def parse_offset(tz_offset: str) -> timezone:
    """Turn ``"+05:00"`` / ``"-03:00"`` into a fixed-offset tzinfo."""
    sign = 1 if tz_offset[0] == "+" else -1
    offset_parts = tz_offset[1:].split(":")
    offset_hours = int(offset_parts[0])
    offset_mins = int(offset_parts[1]) if len(offset_parts) > 1 else 0
    return timezone(timedelta(hours=sign * offset_hours, minutes=sign * offset_mins))


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in the organisation's local time zone."""

    def __init__(self, tz_offset: str) -> None:
        self.tz = parse_offset(tz_offset)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()
