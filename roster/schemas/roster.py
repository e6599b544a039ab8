"""Pydantic schemas for departments, positions, members and schedules."""

from __future__ import annotations

import re
import datetime as dt

from pydantic import BaseModel, Field, field_validator, model_validator

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def _non_empty(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name must not be empty")
    if len(v) > 200:
        raise ValueError("Name must not exceed 200 characters")
    return v


# ── Department ──────────────────────────────────────────────────────
class DepartmentCreate(BaseModel):
    name: str
    description: str | None = None
    color: str = "#3a7ca5"

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _non_empty(v)

    @field_validator("color")
    @classmethod
    def _color(cls, v: str) -> str:
        if not _COLOR_RE.match(v):
            raise ValueError("Color must be a hex value like #3a7ca5")
        return v


class DepartmentUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None

    @field_validator("color")
    @classmethod
    def _color(cls, v: str | None) -> str | None:
        if v is not None and not _COLOR_RE.match(v):
            raise ValueError("Color must be a hex value like #3a7ca5")
        return v


class DepartmentRead(BaseModel):
    id: int
    name: str
    description: str | None
    color: str
    leader_ids: list[int] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class LeadersUpdate(BaseModel):
    user_ids: list[int]


# ── Position ────────────────────────────────────────────────────────
class PositionCreate(BaseModel):
    name: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _non_empty(v)


class PositionRead(BaseModel):
    id: int
    department_id: int
    name: str
    description: str | None

    model_config = {"from_attributes": True}


# ── Member ──────────────────────────────────────────────────────────
class MemberCreate(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _non_empty(v)


class MemberUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None


class MemberRead(BaseModel):
    id: int
    name: str
    email: str | None
    phone: str | None
    notes: str | None
    created_at: dt.datetime | None

    model_config = {"from_attributes": True}


# ── Schedule ────────────────────────────────────────────────────────
class ScheduleCreate(BaseModel):
    member_id: int
    department_id: int
    position_id: int
    date: dt.date
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _times(self) -> "ScheduleCreate":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.end_time is not None and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ScheduleUpdate(BaseModel):
    member_id: int | None = None
    department_id: int | None = None
    position_id: int | None = None
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    notes: str | None = None


class ScheduleRead(BaseModel):
    id: int
    member_id: int
    department_id: int
    position_id: int
    date: dt.date
    start_time: dt.time | None
    end_time: dt.time | None
    notes: str | None

    model_config = {"from_attributes": True}


class ConflictCheckResponse(BaseModel):
    conflict: bool
    department_id: int | None = None
    department_name: str | None = None


class DeleteResponse(BaseModel):
    success: bool
    message: str
