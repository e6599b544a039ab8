"""Pydantic schemas for users, registration and role management."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from roster.core.permissions import ApprovalStatus, Role


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v:
        raise ValueError("Invalid email address")
    return v


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must not exceed 72 bytes")
        return v

    @field_validator("full_name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v


class RegisterResponse(BaseModel):
    id: int
    email: str
    approval_status: ApprovalStatus
    message: str
    verification_token: str | None = None


class UserRead(BaseModel):
    id: int
    email: str
    full_name: str | None
    role: Role
    approval_status: ApprovalStatus
    email_verified: bool
    member_id: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class MeRead(UserRead):
    led_department_ids: list[int]
    permissions: list[str]


class RoleUpdate(BaseModel):
    role: Role
    department_ids: list[int] | None = None
    member_id: int | None = None
