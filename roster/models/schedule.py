"""
Schedule — one member assigned to one position of one department on one day.

``exclusive_day`` mirrors ``date`` for slots created under the day-exclusive
rule and stays NULL for time-ranged slots.  ``(member_id, exclusive_day)`` is
unique, so two racing day-exclusive creations for the same member and day
cannot both commit while timed slots may still share a day.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from sqlalchemy import (Column, Date, DateTime, ForeignKey, Index, Integer,
                        String, Time, UniqueConstraint)

from roster.db.base import Base


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("member_id", "exclusive_day", name="uq_schedule_member_day"),
        Index("ix_schedule_member_date", "member_id", "date"),
        Index("ix_schedule_department_date", "department_id", "date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    member_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    department_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False
    )
    position_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False
    )
    date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    exclusive_day: date | None = Column(Date, nullable=True)  # type: ignore[assignment]
    # Only meaningful for the time-ranged conflict strategy.
    start_time: time | None = Column(Time, nullable=True)  # type: ignore[assignment]
    end_time: time | None = Column(Time, nullable=True)  # type: ignore[assignment]
    notes: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
