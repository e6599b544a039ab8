"""
FastAPI dependencies — database session, clock, auth context and guards.

Every protected route declares the permission it needs through
``require(...)``; the guard resolves the caller into an ``AuthContext`` and
runs it through the authorization engine before the handler executes.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.core.clock import Clock, SystemClock
from roster.core.config import settings
from roster.core.conflicts import ConflictStrategy, get_strategy
from roster.core.permissions import AuthContext, Permission, ensure_access
from roster.core.security import decode_access_token
from roster.db.session import async_session_factory
from roster.models.user import User
from roster.services.users import build_auth_context

# We use auto_error=False so we can manually check for the cookie if header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Collaborators ───────────────────────────────────────────────────
def get_clock() -> Clock:
    return SystemClock(settings.TIMEZONE_OFFSET)


def get_conflict_strategy() -> ConflictStrategy:
    return get_strategy(settings.CONFLICT_STRATEGY)


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),  # Read from HttpOnly Cookie
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Decode JWT from Header OR Cookie and look up the user.

    Returns ``None`` instead of raising so the guard can decide between
    "sign in" and "wait for approval" in the right order.
    """
    final_token = token
    if not final_token and access_token:
        if access_token.startswith("Bearer "):
            final_token = access_token.split(" ", 1)[1]
        else:
            final_token = access_token

    if not final_token:
        return None

    payload = decode_access_token(final_token)
    if payload is None or payload.get("sub") is None:
        return None

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_auth_context(
    user: User | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AuthContext | None:
    if user is None:
        return None
    return await build_auth_context(db, user)


def require(permission: Permission | None = None) -> Callable[..., Awaitable[AuthContext]]:
    """Build a guard that only lets active callers holding ``permission`` through."""

    async def _guard(ctx: AuthContext | None = Depends(get_auth_context)) -> AuthContext:
        return ensure_access(ctx, permission)

    return _guard
