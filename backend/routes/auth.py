"""
Auth endpoints — email/password accounts with JWT sessions.

The access token is returned in the body and also set as an httpOnly
cookie, so browser clients and API clients authenticate the same way:
    Authorization: Bearer <token>   or   Cookie: token=<token>
"""
import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_current_user, get_realtime
from domain.errors import NotImplementedFeatureError
from domain.responses import success_response
from middleware.auth import cookie_max_age, issue_access_token
from middleware.rate_limit import rate_limit
from models import (
    ForgotPasswordRequest, LoginRequest, RegisterRequest, ResetPasswordRequest,
    UpdateMeRequest, UpdatePasswordRequest,
)
from services import auth_service, notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _send_token(response: Response, user: User, message: str | None = None) -> dict:
    token = issue_access_token(user_id=user.id, role=user.role)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=cookie_max_age(),
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
    )
    return success_response(data={"user": auth_service.serialize_user(user), "token": token}, message=message)


# ── POST /api/auth/register ─────────────────────────────────────────

@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(max_requests=10, window_seconds=15 * 60))],
)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    realtime=Depends(get_realtime),
):
    user, welcome = await auth_service.register(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
    )
    await db.commit()
    await notification_service.push(realtime, welcome)
    return _send_token(response, user, message="Registration successful")


# ── POST /api/auth/login ────────────────────────────────────────────

@router.post("/login", dependencies=[Depends(rate_limit(max_requests=10, window_seconds=15 * 60))])
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user = await auth_service.authenticate(db, email=body.email, password=body.password)
    await db.commit()
    return _send_token(response, user, message="Login successful")


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name)
    return success_response(message="Logged out successfully")


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return success_response(data={"user": auth_service.serialize_user(user)})


@router.post("/refresh")
async def refresh(
    response: Response,
    token: Optional[str] = Cookie(None, alias=settings.auth_cookie_name),
    db: AsyncSession = Depends(get_db),
):
    """Re-issue a token from the cookie, even if it has expired."""
    user = await auth_service.refresh_user(db, token=token)
    return _send_token(response, user)


@router.patch("/update-password")
async def update_password(
    body: UpdatePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.update_password(
        db, user=user, current_password=body.current_password, new_password=body.new_password
    )
    await db.commit()
    return _send_token(response, user, message="Password updated successfully")


@router.patch("/update-me")
async def update_me(
    body: UpdateMeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.update_me(db, user=user, **body.model_dump(exclude_unset=True))
    await db.commit()
    return success_response(data={"user": auth_service.serialize_user(user)})


@router.post("/forgot-password", dependencies=[Depends(rate_limit(max_requests=5, window_seconds=15 * 60))])
async def forgot_password(body: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Always answers the same way so account existence is not revealed."""
    user = await auth_service.get_user_by_email(db, body.email)
    if user:
        logger.info(f"Password reset requested for: {user.email}")
    return success_response(message="If that email exists, a password reset link has been sent")


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    raise NotImplementedFeatureError("Password reset is not available yet")
