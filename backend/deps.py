"""
Shared FastAPI dependencies.

Centralizes common dependencies so routers import from a single place:
DB session, auth guards, pagination and the per-app singletons
(response cache, real-time hub, notification scheduler) that live on
`app.state`.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from fastapi import Cookie, Depends, Header, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from domain.enums import ADMIN_ROLES, Role
from domain.errors import PermissionDeniedError, UnauthorizedError
from middleware.auth import decode_access_token, extract_token


class Pagination(TypedDict):
    page: int
    limit: int
    offset: int


def pagination_params(
    page: int = Query(1, ge=1, le=100_000),
    limit: int = Query(20, ge=1, le=100),
) -> Pagination:
    return {"page": page, "limit": limit, "offset": (page - 1) * limit}


# ── Auth Guards ─────────────────────────────────────────────────────

async def _load_user(db: AsyncSession, user_id: str | None) -> User | None:
    if not user_id:
        return None
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    token: Optional[str] = Cookie(None, alias=settings.auth_cookie_name),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Require a valid access token for an existing, active user.
    """
    raw = extract_token(authorization, token)
    if not raw:
        raise UnauthorizedError("Not authorized. Please log in.")

    payload = decode_access_token(raw)
    user = await _load_user(db, payload.get("sub"))
    if not user:
        raise UnauthorizedError("User no longer exists.")
    if not user.is_active:
        raise UnauthorizedError("Your account has been deactivated.")
    return user


async def get_optional_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    token: Optional[str] = Cookie(None, alias=settings.auth_cookie_name),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Best-effort auth: anonymous callers (or bad tokens) yield None."""
    raw = extract_token(authorization, token)
    if not raw:
        return None
    try:
        payload = decode_access_token(raw)
    except HTTPException:
        return None
    user = await _load_user(db, payload.get("sub"))
    if user and user.is_active:
        return user
    return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Admin access required.")
    return user


async def require_super_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.SUPER_ADMIN.value:
        raise PermissionDeniedError("Super admin access required.")
    return user


def is_admin(user: User | None) -> bool:
    return bool(user) and user.role in ADMIN_ROLES


# ── App-scoped services ─────────────────────────────────────────────

def get_cache(request: Request):
    """Response cache constructed in main.py."""
    return request.app.state.cache


def get_realtime(request: Request):
    """WebSocket room hub constructed in main.py."""
    return request.app.state.realtime


def get_scheduler(request: Request):
    return request.app.state.scheduler
