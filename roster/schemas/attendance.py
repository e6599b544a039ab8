"""Pydantic schemas for check-ins, reports, alerts and attendance settings."""

from __future__ import annotations

import re
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from roster.core.attendance import CheckinStatus
from roster.core.geofence import LocationFailure

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ── Check-in ────────────────────────────────────────────────────────
class CheckinRequest(BaseModel):
    schedule_id: int
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    location_error: LocationFailure | None = None
    # Replays only: the moment the check-in actually happened.
    recorded_at: datetime | None = None

    @model_validator(mode="after")
    def _location(self) -> "CheckinRequest":
        has_coords = self.latitude is not None and self.longitude is not None
        if self.location_error is None and not has_coords:
            raise ValueError("Either latitude/longitude or location_error is required")
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self


class CheckinRead(BaseModel):
    id: int
    schedule_id: int
    member_id: int
    department_id: int
    date: date
    checkin_time: datetime | None
    status: CheckinStatus
    latitude: float | None
    longitude: float | None
    location_validated: bool | None

    model_config = {"from_attributes": True}


class CheckinResponse(BaseModel):
    success: bool
    checkin: CheckinRead
    status_label: str
    distance_meters: float


# ── Report ──────────────────────────────────────────────────────────
class ReportEntry(BaseModel):
    schedule_id: int
    member_id: int
    member_name: str
    department_id: int
    department_name: str
    position_name: str
    status: CheckinStatus
    status_label: str
    status_color: str
    checkin_time: datetime | None


class CheckinReportResponse(BaseModel):
    date: date
    total: int
    counts: dict[str, int]
    entries: list[ReportEntry]


class SweepResponse(BaseModel):
    date: date
    ran: bool
    marked_absent: int
    alerts_created: int


# ── Alerts ──────────────────────────────────────────────────────────
class AlertRead(BaseModel):
    id: int
    type: str
    title: str
    message: str
    target_user_id: int | None
    department_id: int | None
    member_id: int | None
    date: date
    read: bool = False
    created_at: datetime | None

    model_config = {"from_attributes": True}


class MarkReadResponse(BaseModel):
    success: bool
    updated: int


# ── Check-in Settings ──────────────────────────────────────────────
class CheckinSettingsRead(BaseModel):
    checkin_deadline: str
    service_end_time: str
    fence_latitude: float
    fence_longitude: float
    fence_radius_meters: float

    model_config = {"from_attributes": True}


class CheckinSettingsUpdate(BaseModel):
    checkin_deadline: str | None = None
    service_end_time: str | None = None
    fence_latitude: float | None = Field(default=None, ge=-90, le=90)
    fence_longitude: float | None = Field(default=None, ge=-180, le=180)
    fence_radius_meters: float | None = Field(default=None, gt=0)

    @field_validator("checkin_deadline", "service_end_time")
    @classmethod
    def _hhmm(cls, v: str | None) -> str | None:
        if v is not None and not _HHMM_RE.match(v):
            raise ValueError("Time of day must be formatted as HH:MM")
        return v


# ── Generic ────────────────────────────────────────────────────────
class LogoutResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    db: bool
    status: str
