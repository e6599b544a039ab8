"""
User lifecycle: registration, email verification, approval and role changes.

Approve/reject/promote check the acting caller's permission *before*
touching storage; a refused caller never causes a read or write of the
target user.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.core.exceptions import NotFound, PermissionDenied, ValidationError
from roster.core.permissions import (LEADERSHIP_ROLES, ApprovalStatus,
                                     AuthContext, Permission, Role,
                                     can_transition, permitted)
from roster.core.security import get_password_hash
from roster.models.department import Department, DepartmentLeader
from roster.models.member import Member
from roster.models.user import User

logger = logging.getLogger(__name__)


async def led_department_ids(db: AsyncSession, user_id: int) -> frozenset[int]:
    result = await db.execute(
        select(DepartmentLeader.department_id).where(DepartmentLeader.user_id == user_id)
    )
    return frozenset(result.scalars().all())


async def build_auth_context(db: AsyncSession, user: User) -> AuthContext:
    return AuthContext(
        user_id=user.id,
        role=Role(user.role),
        approval_status=ApprovalStatus(user.approval_status),
        email_verified=bool(user.email_verified),
        led_department_ids=await led_department_ids(db, user.id),
        member_id=user.member_id,
    )


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


# ── Registration ────────────────────────────────────────────────────
async def register_user(db: AsyncSession, email: str, password: str, full_name: str) -> User:
    """Create a pending, unverified ``member`` account."""
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ValidationError("Email already registered")

    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=Role.MEMBER.value,
        approval_status=ApprovalStatus.PENDING.value,
        email_verified=False,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Registered user %d (%s), awaiting approval", user.id, user.email)
    return user


async def verify_email(db: AsyncSession, user_id: int) -> User:
    user = await _get_user(db, user_id)
    if not user.email_verified:
        user.email_verified = True
        await db.commit()
        await db.refresh(user)
        logger.info("Email verified for user %d", user.id)
    return user


# ── Approval workflow ───────────────────────────────────────────────
async def list_pending_users(db: AsyncSession, ctx: AuthContext) -> list[User]:
    if not permitted(ctx.role, Permission.APPROVE_USERS):
        raise PermissionDenied("You are not allowed to approve users")
    result = await db.execute(
        select(User)
        .where(User.approval_status == ApprovalStatus.PENDING.value)
        .order_by(User.created_at)
    )
    return list(result.scalars().all())


async def set_approval(
    db: AsyncSession,
    ctx: AuthContext,
    user_id: int,
    target: ApprovalStatus,
) -> User:
    if not permitted(ctx.role, Permission.APPROVE_USERS):
        raise PermissionDenied("You are not allowed to approve or reject users")

    user = await _get_user(db, user_id)
    if not can_transition(user.approval_status, target):
        raise ValidationError(
            f"Cannot change approval status from {user.approval_status} to {target.value}"
        )

    user.approval_status = target.value
    await db.commit()
    await db.refresh(user)
    logger.info("User %d %s by user %d", user.id, target.value, ctx.user_id)
    return user


# ── Roles & led departments ─────────────────────────────────────────
async def _replace_led_departments(db: AsyncSession, user_id: int, department_ids: Iterable[int]) -> None:
    wanted = set(department_ids)
    if wanted:
        found = await db.execute(select(Department.id).where(Department.id.in_(wanted)))
        missing = wanted - set(found.scalars().all())
        if missing:
            raise NotFound(f"Department(s) not found: {sorted(missing)}")

    await db.execute(delete(DepartmentLeader).where(DepartmentLeader.user_id == user_id))
    for department_id in sorted(wanted):
        db.add(DepartmentLeader(department_id=department_id, user_id=user_id))


async def change_role(
    db: AsyncSession,
    ctx: AuthContext,
    user_id: int,
    role: Role,
    department_ids: list[int] | None = None,
    member_id: int | None = None,
) -> User:
    if not permitted(ctx.role, Permission.MANAGE_USER_ROLES):
        raise PermissionDenied("You are not allowed to change user roles")

    user = await _get_user(db, user_id)

    if department_ids and role not in LEADERSHIP_ROLES:
        raise ValidationError("Only leaders or admins can lead departments")

    if member_id is not None:
        member = await db.execute(select(Member.id).where(Member.id == member_id))
        if member.scalar_one_or_none() is None:
            raise NotFound("Member not found")
        user.member_id = member_id

    if role not in LEADERSHIP_ROLES:
        await _replace_led_departments(db, user.id, [])
    elif department_ids is not None:
        await _replace_led_departments(db, user.id, department_ids)

    previous = user.role
    user.role = role.value
    await db.commit()
    await db.refresh(user)
    logger.info("User %d role %s -> %s by user %d", user.id, previous, role.value, ctx.user_id)
    return user


async def set_department_leaders(
    db: AsyncSession,
    ctx: AuthContext,
    department_id: int,
    user_ids: list[int],
) -> list[int]:
    """Replace the leader list of a department."""
    if not permitted(ctx.role, Permission.MANAGE_ALL):
        raise PermissionDenied("Only administrators can assign department leaders")

    department = await db.execute(select(Department.id).where(Department.id == department_id))
    if department.scalar_one_or_none() is None:
        raise NotFound("Department not found")

    wanted = set(user_ids)
    if wanted:
        result = await db.execute(select(User).where(User.id.in_(wanted)))
        users = {u.id: u for u in result.scalars().all()}
        missing = wanted - users.keys()
        if missing:
            raise NotFound(f"User(s) not found: {sorted(missing)}")
        ineligible = sorted(uid for uid, u in users.items() if Role(u.role) not in LEADERSHIP_ROLES)
        if ineligible:
            raise ValidationError(f"User(s) {ineligible} do not have a leadership role")

    await db.execute(delete(DepartmentLeader).where(DepartmentLeader.department_id == department_id))
    for uid in sorted(wanted):
        db.add(DepartmentLeader(department_id=department_id, user_id=uid))
    await db.commit()
    logger.info("Department %d leaders set to %s by user %d", department_id, sorted(wanted), ctx.user_id)
    return sorted(wanted)


async def department_leader_ids(db: AsyncSession, department_ids: Iterable[int]) -> dict[int, list[int]]:
    ids = list(department_ids)
    leaders: dict[int, list[int]] = {i: [] for i in ids}
    if not ids:
        return leaders
    result = await db.execute(
        select(DepartmentLeader.department_id, DepartmentLeader.user_id)
        .where(DepartmentLeader.department_id.in_(ids))
        .order_by(DepartmentLeader.user_id)
    )
    for department_id, user_id in result.all():
        leaders[department_id].append(user_id)
    return leaders
