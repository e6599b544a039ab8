"""
Checkin — attendance record for a schedule.  At most one per schedule.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey,
                        Integer, String)

from roster.db.base import Base


class Checkin(Base):
    __tablename__ = "checkins"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    schedule_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    member_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    department_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False
    )
    date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    checkin_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(16), nullable=False, default="pending", server_default="pending"
    )  # pending | on_time | late | absent
    latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    location_validated: bool | None = Column(Boolean, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
