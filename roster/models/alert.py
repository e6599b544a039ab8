"""
Alert model — notifications raised by background sweeps.

``target_user_id`` NULL means the alert is broadcast to everyone who can
see its department (that department's leaders and the admins).  Read state
is kept per recipient in ``alert_reads``, so one viewer marking a broadcast
read leaves it unread for the others.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Column, Date, DateTime, ForeignKey, Integer, String,
                        UniqueConstraint)

from roster.db.base import Base


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        UniqueConstraint("type", "member_id", "date", name="uq_alert_type_member_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    type: str = Column(String(32), nullable=False)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    message: str = Column(String(1000), nullable=False)  # type: ignore[assignment]
    target_user_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    department_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    member_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class AlertReceipt(Base):
    """One row per (alert, user) once that user has read the alert."""

    __tablename__ = "alert_reads"

    alert_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("alerts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    read_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
