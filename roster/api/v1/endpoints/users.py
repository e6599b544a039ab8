"""
User administration — pending approvals and role changes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_db, require
from roster.core.permissions import ApprovalStatus, AuthContext, Permission
from roster.models.user import User
from roster.schemas.user import RoleUpdate, UserRead
from roster.services import users as user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/pending", response_model=list[UserRead])
async def list_pending(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.APPROVE_USERS)),
) -> list[User]:
    return await user_service.list_pending_users(db, ctx)


@router.post("/{user_id}/approve", response_model=UserRead)
async def approve_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.APPROVE_USERS)),
) -> User:
    return await user_service.set_approval(db, ctx, user_id, ApprovalStatus.APPROVED)


@router.post("/{user_id}/reject", response_model=UserRead)
async def reject_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.APPROVE_USERS)),
) -> User:
    return await user_service.set_approval(db, ctx, user_id, ApprovalStatus.REJECTED)


@router.put("/{user_id}/role", response_model=UserRead)
async def change_role(
    user_id: int,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_USER_ROLES)),
) -> User:
    """Promote or demote a user, optionally binding led departments and a member record."""
    return await user_service.change_role(
        db,
        ctx,
        user_id,
        body.role,
        department_ids=body.department_ids,
        member_id=body.member_id,
    )
