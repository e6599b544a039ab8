"""
Member CRUD endpoints.

- Reads and writes require ``manage_department_members``.
- Department leaders only reach members scheduled in a department they
  lead, plus members with no schedule yet so new volunteers can be staffed.
- DELETE requires ``manage_all``.
- A member's name is frozen once any schedule references it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_db, require
from roster.core.exceptions import NotFound, PermissionDenied, ValidationError
from roster.core.permissions import AuthContext, Permission, permitted
from roster.models.member import Member
from roster.models.schedule import Schedule
from roster.schemas.roster import DeleteResponse, MemberCreate, MemberRead, MemberUpdate

router = APIRouter(prefix="/members", tags=["members"])
logger = logging.getLogger(__name__)


def _reachable(ctx: AuthContext):
    """Filter on members the caller may manage, or None for everyone."""
    if permitted(ctx.role, Permission.MANAGE_ALL):
        return None
    scheduled = select(Schedule.id).where(Schedule.member_id == Member.id).exists()
    in_led = Member.id.in_(
        select(Schedule.member_id).where(Schedule.department_id.in_(ctx.led_department_ids))
    )
    return or_(~scheduled, in_led)


async def _get_member(db: AsyncSession, member_id: int, ctx: AuthContext) -> Member:
    result = await db.execute(select(Member).where(Member.id == member_id))
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFound("Member not found")

    scope = _reachable(ctx)
    if scope is not None:
        allowed = await db.execute(select(Member.id).where(Member.id == member_id, scope))
        if allowed.scalar_one_or_none() is None:
            raise PermissionDenied("You can only manage members of departments you lead")
    return member


@router.get("", response_model=list[MemberRead])
async def list_members(
    search: str | None = Query(None, max_length=200),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> list[Member]:
    query = select(Member)
    scope = _reachable(ctx)
    if scope is not None:
        query = query.where(scope)
    if search:
        query = query.where(Member.name.ilike(f"%{search.strip()}%"))
    result = await db.execute(query.order_by(Member.name))
    return list(result.scalars().all())


@router.post("", response_model=MemberRead, status_code=201)
async def create_member(
    body: MemberCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> Member:
    member = Member(**body.model_dump())
    db.add(member)
    await db.commit()
    await db.refresh(member)
    logger.info("Member %d (%s) created by user %d", member.id, member.name, ctx.user_id)
    return member


@router.get("/{member_id}", response_model=MemberRead)
async def get_member(
    member_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> Member:
    return await _get_member(db, member_id, ctx)


@router.put("/{member_id}", response_model=MemberRead)
async def update_member(
    member_id: int,
    body: MemberUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> Member:
    member = await _get_member(db, member_id, ctx)
    changes = body.model_dump(exclude_unset=True)

    new_name = changes.pop("name", None)
    if new_name is not None and new_name.strip() != member.name:
        scheduled = await db.execute(
            select(Schedule.id).where(Schedule.member_id == member_id).limit(1)
        )
        if scheduled.scalar_one_or_none() is not None:
            raise ValidationError("Cannot rename a member who already has schedules")
        if not new_name.strip():
            raise ValidationError("Name must not be empty")
        member.name = new_name.strip()

    for field, value in changes.items():
        setattr(member, field, value)

    await db.commit()
    await db.refresh(member)
    return member


@router.delete("/{member_id}", response_model=DeleteResponse)
async def delete_member(
    member_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> DeleteResponse:
    """Delete a member and, through the foreign keys, their schedules and check-ins."""
    member = await _get_member(db, member_id, ctx)
    name = member.name
    await db.execute(delete(Member).where(Member.id == member_id))
    await db.commit()
    logger.info("Member %d (%s) deleted by user %d", member_id, name, ctx.user_id)
    return DeleteResponse(success=True, message=f"Member '{name}' deleted")
