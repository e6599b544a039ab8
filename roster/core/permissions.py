"""
Authorization engine — roles, approval states and the permission table.

The role → permission table is fixed data, not configuration: adding a
permission means editing ``ROLE_PERMISSIONS`` here.  Every decision is a
pure function of an ``AuthContext`` so the rules can be exercised without
a database or a running session.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from roster.core.exceptions import ApprovalPending, AuthenticationRequired, PermissionDenied


class Role(str, enum.Enum):
    MEMBER = "member"
    DEPARTMENT_LEADER = "department_leader"
    ADMIN = "admin"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Permission(str, enum.Enum):
    VIEW_OWN_SCHEDULES = "view_own_schedules"
    VIEW_PERSONAL_SETTINGS = "view_personal_settings"
    VIEW_DEPARTMENT_SCHEDULES = "view_department_schedules"
    MANAGE_DEPARTMENT_SCHEDULES = "manage_department_schedules"
    MANAGE_DEPARTMENT_MEMBERS = "manage_department_members"
    VIEW_ALL = "view_all"
    MANAGE_ALL = "manage_all"
    APPROVE_USERS = "approve_users"
    MANAGE_USER_ROLES = "manage_user_roles"


class AccessState(str, enum.Enum):
    OK = "ok"
    REDIRECT_PENDING = "redirect_pending"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_DENIED = "redirect_denied"


_MEMBER = frozenset({Permission.VIEW_OWN_SCHEDULES, Permission.VIEW_PERSONAL_SETTINGS})
_LEADER = _MEMBER | {
    Permission.VIEW_DEPARTMENT_SCHEDULES,
    Permission.MANAGE_DEPARTMENT_SCHEDULES,
    Permission.MANAGE_DEPARTMENT_MEMBERS,
    Permission.APPROVE_USERS,
}

ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.MEMBER: _MEMBER,
        Role.DEPARTMENT_LEADER: frozenset(_LEADER),
        Role.ADMIN: frozenset(Permission),
    }
)

# Roles allowed to appear in a department's leader list.
LEADERSHIP_ROLES = frozenset({Role.DEPARTMENT_LEADER, Role.ADMIN})

# Only these transitions exist; nothing moves back to pending or between
# approved and rejected.
APPROVAL_TRANSITIONS: Mapping[ApprovalStatus, frozenset[ApprovalStatus]] = MappingProxyType(
    {
        ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
        ApprovalStatus.APPROVED: frozenset(),
        ApprovalStatus.REJECTED: frozenset(),
    }
)


@dataclass(frozen=True)
class AuthContext:
    """Everything an authorization decision may look at for one caller."""

    user_id: int
    role: Role
    approval_status: ApprovalStatus
    email_verified: bool = False
    led_department_ids: frozenset[int] = field(default_factory=frozenset)
    member_id: int | None = None

    @property
    def is_active(self) -> bool:
        return is_active(self.approval_status, self.email_verified)


def is_active(approval_status: ApprovalStatus | str, email_verified: bool) -> bool:
    """A user may reach authenticated areas only once approved AND verified."""
    return ApprovalStatus(approval_status) is ApprovalStatus.APPROVED and bool(email_verified)


def permitted(role: Role | str, permission: Permission | str) -> bool:
    return Permission(permission) in ROLE_PERMISSIONS[Role(role)]


def access_state(ctx: AuthContext | None, permission: Permission | None = None) -> AccessState:
    # Pending must win over everything else: an unapproved caller never
    # learns whether their role would have been allowed.
    if ctx is not None and not ctx.is_active:
        return AccessState.REDIRECT_PENDING
    if ctx is None:
        return AccessState.REDIRECT_LOGIN
    if permission is not None and not permitted(ctx.role, permission):
        return AccessState.REDIRECT_DENIED
    return AccessState.OK


def ensure_access(ctx: AuthContext | None, permission: Permission | None = None) -> AuthContext:
    """Raise the typed error matching ``access_state`` or return the context."""
    state = access_state(ctx, permission)
    if state is AccessState.REDIRECT_PENDING:
        raise ApprovalPending()
    if state is AccessState.REDIRECT_LOGIN or ctx is None:
        raise AuthenticationRequired()
    if state is AccessState.REDIRECT_DENIED:
        raise PermissionDenied()
    return ctx


def can_manage_department(ctx: AuthContext, department_id: int) -> bool:
    if not ctx.is_active:
        return False
    if permitted(ctx.role, Permission.MANAGE_ALL):
        return True
    return (
        permitted(ctx.role, Permission.MANAGE_DEPARTMENT_SCHEDULES)
        and department_id in ctx.led_department_ids
    )


def ensure_department_access(ctx: AuthContext, department_id: int) -> None:
    if not can_manage_department(ctx, department_id):
        raise PermissionDenied("You can only manage departments you lead")


def can_transition(current: ApprovalStatus | str, target: ApprovalStatus | str) -> bool:
    return ApprovalStatus(target) in APPROVAL_TRANSITIONS[ApprovalStatus(current)]
