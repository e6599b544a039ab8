"""
Alerts inbox.

A user sees alerts addressed to them plus the department broadcasts
(``target_user_id`` NULL) of the departments they can oversee: all of
them for admins, the led ones for department leaders.  Each user keeps
their own read state.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_db, require
from roster.core.exceptions import NotFound
from roster.core.permissions import AuthContext, Permission, permitted
from roster.models.alert import Alert, AlertReceipt
from roster.schemas.attendance import AlertRead, MarkReadResponse

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _visible(ctx: AuthContext):
    if permitted(ctx.role, Permission.VIEW_ALL):
        broadcast = Alert.target_user_id.is_(None)
    elif ctx.led_department_ids:
        broadcast = Alert.target_user_id.is_(None) & Alert.department_id.in_(ctx.led_department_ids)
    else:
        return Alert.target_user_id == ctx.user_id
    return or_(Alert.target_user_id == ctx.user_id, broadcast)


def _own_receipt(ctx: AuthContext):
    return and_(AlertReceipt.alert_id == Alert.id, AlertReceipt.user_id == ctx.user_id)


@router.get("", response_model=list[AlertRead])
async def list_alerts(
    unread_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> list[AlertRead]:
    query = (
        select(Alert, AlertReceipt.alert_id)
        .outerjoin(AlertReceipt, _own_receipt(ctx))
        .where(_visible(ctx))
    )
    if unread_only:
        query = query.where(AlertReceipt.alert_id.is_(None))
    result = await db.execute(query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit))
    return [
        AlertRead.model_validate(alert).model_copy(update={"read": receipt is not None})
        for alert, receipt in result.all()
    ]


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> MarkReadResponse:
    result = await db.execute(
        select(Alert.id)
        .outerjoin(AlertReceipt, _own_receipt(ctx))
        .where(_visible(ctx), AlertReceipt.alert_id.is_(None))
    )
    unread = list(result.scalars().all())
    db.add_all(AlertReceipt(alert_id=alert_id, user_id=ctx.user_id) for alert_id in unread)
    await db.commit()
    return MarkReadResponse(success=True, updated=len(unread))


@router.post("/{alert_id}/read", response_model=MarkReadResponse)
async def mark_read(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.VIEW_OWN_SCHEDULES)),
) -> MarkReadResponse:
    result = await db.execute(
        select(Alert.id, AlertReceipt.alert_id)
        .outerjoin(AlertReceipt, _own_receipt(ctx))
        .where(Alert.id == alert_id, _visible(ctx))
    )
    row = result.one_or_none()
    if row is None:
        raise NotFound("Alert not found")
    if row[1] is not None:
        return MarkReadResponse(success=True, updated=0)
    db.add(AlertReceipt(alert_id=alert_id, user_id=ctx.user_id))
    await db.commit()
    return MarkReadResponse(success=True, updated=1)
