"""
Department, position and leader endpoints.

- GET operations require ``view_department_schedules``.
- Department writes and leader assignment are admin-only (``manage_all``).
- Positions can be managed by the leaders of their department.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_db, require
from roster.core.exceptions import NotFound, ValidationError
from roster.core.permissions import AuthContext, Permission, ensure_department_access
from roster.models.department import Department, Position
from roster.models.member import Member
from roster.models.schedule import Schedule
from roster.schemas.roster import (DeleteResponse, DepartmentCreate,
                                   DepartmentRead, DepartmentUpdate,
                                   LeadersUpdate, MemberRead, PositionCreate,
                                   PositionRead)
from roster.services import users as user_service

router = APIRouter(tags=["departments"])
logger = logging.getLogger(__name__)


async def _get_department(db: AsyncSession, department_id: int) -> Department:
    result = await db.execute(select(Department).where(Department.id == department_id))
    department = result.scalar_one_or_none()
    if department is None:
        raise NotFound("Department not found")
    return department


async def _read(db: AsyncSession, department: Department) -> DepartmentRead:
    leaders = await user_service.department_leader_ids(db, [department.id])
    return DepartmentRead(
        id=department.id,
        name=department.name,
        description=department.description,
        color=department.color,
        leader_ids=leaders[department.id],
    )


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    query = select(Department.id).where(Department.name == name)
    if exclude_id is not None:
        query = query.where(Department.id != exclude_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ValidationError(f"A department named '{name}' already exists")


# ── Departments ─────────────────────────────────────────────────────
@router.get("/departments", response_model=list[DepartmentRead])
async def list_departments(
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> list[DepartmentRead]:
    result = await db.execute(select(Department).order_by(Department.name))
    departments = list(result.scalars().all())
    leaders = await user_service.department_leader_ids(db, [d.id for d in departments])
    return [
        DepartmentRead(
            id=d.id,
            name=d.name,
            description=d.description,
            color=d.color,
            leader_ids=leaders[d.id],
        )
        for d in departments
    ]


@router.post("/departments", response_model=DepartmentRead, status_code=201)
async def create_department(
    body: DepartmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> DepartmentRead:
    await _ensure_unique_name(db, body.name)
    department = Department(**body.model_dump())
    db.add(department)
    await db.commit()
    await db.refresh(department)
    logger.info("Department %d (%s) created by user %d", department.id, department.name, ctx.user_id)
    return await _read(db, department)


@router.get("/departments/{department_id}", response_model=DepartmentRead)
async def get_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> DepartmentRead:
    return await _read(db, await _get_department(db, department_id))


@router.put("/departments/{department_id}", response_model=DepartmentRead)
async def update_department(
    department_id: int,
    body: DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> DepartmentRead:
    department = await _get_department(db, department_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name"):
        changes["name"] = changes["name"].strip()
        await _ensure_unique_name(db, changes["name"], exclude_id=department_id)

    for field, value in changes.items():
        if value is not None or field == "description":
            setattr(department, field, value)

    await db.commit()
    await db.refresh(department)
    return await _read(db, department)


@router.delete("/departments/{department_id}", response_model=DeleteResponse)
async def delete_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> DeleteResponse:
    """Delete a department together with its positions, schedules and check-ins."""
    department = await _get_department(db, department_id)
    name = department.name
    await db.execute(delete(Department).where(Department.id == department_id))
    await db.commit()
    logger.info("Department %d (%s) deleted by user %d", department_id, name, ctx.user_id)
    return DeleteResponse(success=True, message=f"Department '{name}' deleted")


@router.put("/departments/{department_id}/leaders", response_model=DepartmentRead)
async def set_leaders(
    department_id: int,
    body: LeadersUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_ALL)),
) -> DepartmentRead:
    await user_service.set_department_leaders(db, ctx, department_id, body.user_ids)
    return await _read(db, await _get_department(db, department_id))


@router.get("/departments/{department_id}/members", response_model=list[MemberRead])
async def list_department_members(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> list[Member]:
    """Members that hold at least one schedule in the department."""
    await _get_department(db, department_id)
    result = await db.execute(
        select(Member)
        .where(
            Member.id.in_(
                select(Schedule.member_id).where(Schedule.department_id == department_id)
            )
        )
        .order_by(Member.name)
    )
    return list(result.scalars().all())


# ── Positions ───────────────────────────────────────────────────────
@router.get("/departments/{department_id}/positions", response_model=list[PositionRead])
async def list_positions(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(require(Permission.VIEW_DEPARTMENT_SCHEDULES)),
) -> list[Position]:
    await _get_department(db, department_id)
    result = await db.execute(
        select(Position).where(Position.department_id == department_id).order_by(Position.name)
    )
    return list(result.scalars().all())


@router.post("/departments/{department_id}/positions", response_model=PositionRead, status_code=201)
async def create_position(
    department_id: int,
    body: PositionCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> Position:
    ensure_department_access(ctx, department_id)
    await _get_department(db, department_id)

    existing = await db.execute(
        select(Position.id).where(Position.department_id == department_id, Position.name == body.name)
    )
    if existing.scalar_one_or_none() is not None:
        raise ValidationError(f"Position '{body.name}' already exists in this department")

    position = Position(department_id=department_id, **body.model_dump())
    db.add(position)
    await db.commit()
    await db.refresh(position)
    logger.info("Position %d (%s) created in department %d", position.id, position.name, department_id)
    return position


@router.delete("/positions/{position_id}", response_model=DeleteResponse)
async def delete_position(
    position_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(require(Permission.MANAGE_DEPARTMENT_MEMBERS)),
) -> DeleteResponse:
    result = await db.execute(select(Position).where(Position.id == position_id))
    position = result.scalar_one_or_none()
    if position is None:
        raise NotFound("Position not found")
    ensure_department_access(ctx, position.department_id)

    await db.execute(delete(Position).where(Position.id == position_id))
    await db.commit()
    logger.info("Position %d deleted by user %d", position_id, ctx.user_id)
    return DeleteResponse(success=True, message="Position deleted")
