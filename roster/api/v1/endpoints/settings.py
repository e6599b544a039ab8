"""
Check-in settings endpoints — operator-tunable deadline, service end and fence.

Singleton pattern: only one row in checkin_settings. GET retrieves it,
PUT updates it. If no row exists, one is seeded from the environment on
first access.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_db, require
from roster.core.permissions import AuthContext, Permission
from roster.models.checkin_settings import CheckinSettings
from roster.schemas.attendance import (CheckinSettingsRead,
                                       CheckinSettingsUpdate, HealthResponse)
from roster.services.attendance import get_checkin_settings, update_checkin_settings

router = APIRouter(tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("/settings", response_model=CheckinSettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> CheckinSettings:
    """Get current check-in rules."""
    return await get_checkin_settings(db)


@router.put("/settings", response_model=CheckinSettingsRead)
async def update_settings(
    body: CheckinSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> CheckinSettings:
    """Update check-in rules (deadline, service end, fence center and radius)."""
    return await update_checkin_settings(db, ctx, body.model_dump(exclude_unset=True, exclude_none=True))


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — DB connectivity."""
    result = HealthResponse(db=False, status="degraded")

    try:
        await db.execute(select(1))
        result.db = True
        result.status = "ok"
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
    return result
