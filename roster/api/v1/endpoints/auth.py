"""
Auth endpoints — self-registration, email verification, login (OAuth2
password flow), token refresh and logout.
"""

import logging

from fastapi import APIRouter, Cookie, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roster.api.v1.deps import get_current_user, get_db, require
from roster.core.config import settings
from roster.core.exceptions import (ApprovalPending, AuthenticationRequired,
                                    ValidationError)
from roster.core.permissions import (ROLE_PERMISSIONS, ApprovalStatus,
                                     AuthContext, Permission, Role)
from roster.core.security import (create_access_token, create_refresh_token,
                                  create_verification_token,
                                  decode_refresh_token,
                                  decode_verification_token, verify_password)
from roster.models.user import User
from roster.schemas.attendance import LogoutResponse
from roster.schemas.token import RefreshRequest, Token, VerifyEmailRequest
from roster.schemas.user import MeRead, RegisterRequest, RegisterResponse, UserRead
from roster.services import users as user_service

# Rate limiter, keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,  # Set to True in HTTPS production
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _refuse_inactive(user: User) -> None:
    """Pending, rejected and unverified accounts each get their own message."""
    status = ApprovalStatus(user.approval_status)
    if status is ApprovalStatus.REJECTED:
        raise ApprovalPending("Your registration was rejected. Contact an administrator.")
    if status is ApprovalStatus.PENDING:
        raise ApprovalPending("Your account is awaiting approval by a leader or administrator.")
    if not user.email_verified:
        raise ApprovalPending("Please verify your email address before signing in.")


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit("5/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> RegisterResponse:
    """Create a pending member account. Access starts after approval and verification."""
    user = await user_service.register_user(db, body.email, body.password, body.full_name)
    token = create_verification_token(user.id)
    return RegisterResponse(
        id=user.id,
        email=user.email,
        approval_status=ApprovalStatus(user.approval_status),
        message="Registration received. Verify your email and wait for approval.",
        verification_token=token if settings.EXPOSE_VERIFICATION_TOKEN else None,
    )


@router.post("/verify-email", response_model=UserRead)
@limiter.limit("10/minute")
async def verify_email(
    request: Request,
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
) -> User:
    payload = decode_verification_token(body.token)
    if payload is None or payload.get("sub") is None:
        raise ValidationError("Invalid or expired verification token")
    return await user_service.verify_email(db, int(payload["sub"]))


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with user/pass. Returns 200 OK with HttpOnly Cookies."""
    result = await db.execute(
        select(User).where(User.email == form_data.username.lower().strip())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise AuthenticationRequired("Incorrect email or password")
    _refuse_inactive(user)

    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    _set_auth_cookies(response, access_token, refresh_token)
    logger.info("User %d signed in", user.id)

    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
    )


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    response: Response,
    request: Request,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = None
    if body and body.refresh_token:
        token_str = body.refresh_token
    elif refresh_token_cookie:
        token_str = refresh_token_cookie

    if not token_str:
        raise AuthenticationRequired("Refresh token missing")

    payload = decode_refresh_token(token_str)
    if payload is None or payload.get("sub") is None:
        raise AuthenticationRequired("Invalid or expired refresh token")

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationRequired("User not found")
    _refuse_inactive(user)

    new_access = create_access_token(user.id)
    new_refresh = create_refresh_token(user.id)
    _set_auth_cookies(response, new_access, new_refresh)

    return Token(
        access_token=new_access,
        refresh_token=new_refresh,
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=MeRead)
async def read_current_user(
    ctx: AuthContext = Depends(require(Permission.VIEW_PERSONAL_SETTINGS)),
    user: User = Depends(get_current_user),
) -> MeRead:
    """Return profile, led departments and effective permissions of the caller."""
    return MeRead(
        **UserRead.model_validate(user).model_dump(),
        led_department_ids=sorted(ctx.led_department_ids),
        permissions=sorted(p.value for p in ROLE_PERMISSIONS[Role(ctx.role)]),
    )
