"""
Typed domain errors and global exception handlers.

Every decision the core refuses is raised as a ``RosterError`` subclass
with a stable ``code`` so clients can route on the kind of failure
(sign in, wait for approval, pick another date, ...) instead of parsing
messages.  Anything else is logged and answered with a generic 500 so
stack traces never leak.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class RosterError(Exception):
    code = "error"
    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None, **extra: Any) -> None:
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, "success": False, **self.extra}


# ── Access ──────────────────────────────────────────────────────────
class AuthenticationRequired(RosterError):
    code = "authentication_required"
    status_code = 401
    default_detail = "Authentication required"


class ApprovalPending(RosterError):
    code = "approval_pending"
    status_code = 403
    default_detail = "Account is awaiting approval or email verification"


class PermissionDenied(RosterError):
    code = "permission_denied"
    status_code = 403
    default_detail = "You do not have permission to perform this action"


# ── Scheduling ──────────────────────────────────────────────────────
class ScheduleConflict(RosterError):
    code = "schedule_conflict"
    status_code = 409

    def __init__(self, department: str | None) -> None:
        name = department or "another department"
        super().__init__(
            f"Member is already scheduled on this date in {name}",
            department=department,
        )


# ── Check-in ────────────────────────────────────────────────────────
class CheckinWindowClosed(RosterError):
    code = "checkin_window_closed"
    status_code = 409

    def __init__(self, deadline: str) -> None:
        super().__init__(
            f"The check-in deadline ({deadline}) has already passed",
            deadline=deadline,
        )


class LocationUnavailable(RosterError):
    code = "location_unavailable"
    status_code = 422

    _MESSAGES = {
        "permission_denied": "Location permission denied. Enable location to check in.",
        "unavailable": "Location unavailable. Please try again.",
        "timeout": "Timed out while acquiring location. Please try again.",
    }

    def __init__(self, reason: str) -> None:
        super().__init__(
            self._MESSAGES.get(reason, "Could not acquire location."),
            reason=reason,
        )


class OutsideFence(RosterError):
    code = "outside_fence"
    status_code = 403

    def __init__(self, distance_meters: float, formatted: str) -> None:
        super().__init__(
            f"You are {formatted} away from the check-in location",
            distance_meters=round(distance_meters, 1),
        )


# ── Data boundary ───────────────────────────────────────────────────
class NotFound(RosterError):
    code = "not_found"
    status_code = 404
    default_detail = "Resource not found"


class ValidationError(RosterError):
    code = "validation_error"
    status_code = 422
    default_detail = "Invalid request"


# ── Handlers ────────────────────────────────────────────────────────
async def _roster_error_handler(_request: Request, exc: RosterError) -> JSONResponse:
    logger.info("%s: %s", exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(RosterError, _roster_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
