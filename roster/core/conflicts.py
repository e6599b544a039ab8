"""
Schedule conflict detection.

Two rules exist.  ``DayExclusiveStrategy`` is the one in force: a member
serves at most once per calendar day across the whole organisation.
``TimeRangeStrategy`` is the older slot model where assignments carry a
start/end time and only overlapping intervals collide; it is selected with
``CONFLICT_STRATEGY=time_range``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Protocol, Sequence


@dataclass(frozen=True)
class Slot:
    schedule_id: int | None
    member_id: int
    date: date
    department_id: int | None = None
    start_time: time | None = None
    end_time: time | None = None


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    slot: Slot | None = None


class ConflictStrategy(Protocol):
    name: str

    def conflicts(self, existing: Sequence[Slot], candidate: Slot) -> bool: ...

    def collides(self, existing: Slot, candidate: Slot) -> bool: ...


def _same_day(existing: Slot, candidate: Slot) -> bool:
    if candidate.schedule_id is not None and existing.schedule_id == candidate.schedule_id:
        return False
    return existing.member_id == candidate.member_id and existing.date == candidate.date


class DayExclusiveStrategy:
    name = "day"

    def collides(self, existing: Slot, candidate: Slot) -> bool:
        return _same_day(existing, candidate)

    def conflicts(self, existing: Sequence[Slot], candidate: Slot) -> bool:
        return any(self.collides(s, candidate) for s in existing)


def intervals_overlap(new_start: time, new_end: time, start: time, end: time) -> bool:
    return (
        (start <= new_start < end)
        or (start < new_end <= end)
        or (new_start <= start and new_end >= end)
    )


class TimeRangeStrategy:
    name = "time_range"

    def collides(self, existing: Slot, candidate: Slot) -> bool:
        if not _same_day(existing, candidate):
            return False
        times = (candidate.start_time, candidate.end_time, existing.start_time, existing.end_time)
        if any(t is None for t in times):
            # Untimed slots occupy the whole day.
            return True
        return intervals_overlap(*times)  # type: ignore[arg-type]

    def conflicts(self, existing: Sequence[Slot], candidate: Slot) -> bool:
        return any(self.collides(s, candidate) for s in existing)


STRATEGIES: dict[str, ConflictStrategy] = {
    DayExclusiveStrategy.name: DayExclusiveStrategy(),
    TimeRangeStrategy.name: TimeRangeStrategy(),
}


def get_strategy(name: str) -> ConflictStrategy:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown conflict strategy: {name}") from None


def find_conflict(strategy: ConflictStrategy, existing: Iterable[Slot], candidate: Slot) -> ConflictResult:
    """Return the first existing slot that collides with ``candidate``."""
    for slot in existing:
        if strategy.collides(slot, candidate):
            return ConflictResult(conflict=True, slot=slot)
    return ConflictResult(conflict=False)
