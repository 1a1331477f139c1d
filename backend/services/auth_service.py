"""
Auth service — registration, credential checks and profile updates.

Password hashing uses bcrypt. Hashing is deliberately slow, so it runs on
the shared thread pool (services.async_executor) instead of the event loop.
"""
import logging

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Notification, User, utcnow
from domain.errors import UnauthorizedError, ValidationError
from domain.responses import iso
from middleware.auth import decode_access_token
from services import notification_service
from services.async_executor import run_blocking
from utils.validators import normalize_email

logger = logging.getLogger(__name__)


def _hash_sync(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check_sync(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


async def hash_password(password: str) -> str:
    return await run_blocking(_hash_sync, password, settings.bcrypt_rounds)


async def verify_password(password: str, hashed: str) -> bool:
    return await run_blocking(_check_sync, password, hashed)


def serialize_user(user: User) -> dict:
    """Public view of a user (never includes the password hash)."""
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "avatar": user.avatar,
        "role": user.role,
        "isActive": user.is_active,
        "emailVerified": user.email_verified,
        "lastLoginAt": iso(user.last_login_at),
        "createdAt": iso(user.created_at),
    }


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == normalize_email(email)))
    return res.scalar_one_or_none()


async def register(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
) -> tuple[User, Notification]:
    """Create a customer account plus its welcome notification."""
    if await get_user_by_email(db, email):
        raise ValidationError("Email already registered")

    user = User(
        email=normalize_email(email),
        password=await hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        role="CUSTOMER",
    )
    db.add(user)
    await db.flush()

    welcome = await notification_service.create_notification(
        db,
        title=f"Welcome to {settings.store_name}, {first_name}!",
        message=(
            "We're thrilled to have you here. Explore our collections and "
            "enjoy exclusive member benefits. Happy shopping!"
        ),
        type="SUCCESS",
        user_id=user.id,
    )
    logger.info(f"New user registered: {user.email}")
    return user, welcome


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not await verify_password(password, user.password):
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("Your account has been deactivated. Please contact support.")

    user.last_login_at = utcnow()
    await db.flush()
    logger.info(f"User logged in: {user.email}")
    return user


async def refresh_user(db: AsyncSession, *, token: str | None) -> User:
    """Resolve the user behind a (possibly expired) token we issued."""
    if not token:
        raise UnauthorizedError("No refresh token provided")
    payload = decode_access_token(token, verify_exp=False)
    user = await db.get(User, payload.get("sub"))
    if not user or not user.is_active:
        raise UnauthorizedError("User no longer exists or is inactive")
    return user


async def update_password(db: AsyncSession, *, user: User, current_password: str, new_password: str) -> User:
    if not await verify_password(current_password, user.password):
        raise UnauthorizedError("Current password is incorrect")
    user.password = await hash_password(new_password)
    await db.flush()
    logger.info(f"Password updated for: {user.email}")
    return user


async def update_me(
    db: AsyncSession,
    *,
    user: User,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    avatar: str | None = None,
) -> User:
    if first_name is not None:
        user.first_name = first_name
    if last_name is not None:
        user.last_name = last_name
    if phone is not None:
        user.phone = phone
    if avatar is not None:
        user.avatar = avatar
    await db.flush()
    return user
