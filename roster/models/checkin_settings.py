"""
Check-in settings model — singleton table for operator-tunable attendance rules.

Only one row should ever exist.  It is seeded from the environment
configuration on first read; admins adjust it through the settings API and
the check-in / sweep logic reads it on every decision.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String

from roster.db.base import Base


class CheckinSettings(Base):
    __tablename__ = "checkin_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    checkin_deadline: str = Column(String(5), nullable=False, default="17:20")  # type: ignore[assignment]
    service_end_time: str = Column(String(5), nullable=False, default="21:00")  # type: ignore[assignment]
    fence_latitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    fence_longitude: float = Column(Float, nullable=False)  # type: ignore[assignment]
    fence_radius_meters: float = Column(Float, nullable=False, default=100.0)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
