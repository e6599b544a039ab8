"""
User model — authentication, role binding and approval workflow.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from roster.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    full_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(32),
        nullable=False,
        default="member",
        server_default="member",
    )  # member | department_leader | admin
    approval_status: str = Column(  # type: ignore[assignment]
        String(16),
        nullable=False,
        default="pending",
        server_default="pending",
    )  # pending | approved | rejected
    email_verified: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    member_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
