"""
Department, Position and the department ⇄ leader link table.

Deleting a department cascades to its positions, schedules, check-ins and
leader links.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from roster.db.base import Base


class Department(Base):
    __tablename__ = "departments"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(120), unique=True, nullable=False)  # type: ignore[assignment]
    description: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    color: str = Column(String(16), nullable=False, default="#3a7ca5")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    positions = relationship(
        "Position",
        back_populates="department",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Position(Base):
    __tablename__ = "positions"
    __table_args__ = (UniqueConstraint("department_id", "name", name="uq_position_dept_name"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    department_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: str = Column(String(120), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    department = relationship("Department", back_populates="positions")


class DepartmentLeader(Base):
    __tablename__ = "department_leaders"
    __table_args__ = (UniqueConstraint("department_id", "user_id", name="uq_department_leader"),)

    id: int = Column(Integer, primary_key=True)  # type: ignore[assignment]
    department_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
