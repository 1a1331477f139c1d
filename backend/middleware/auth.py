"""
Access-token helpers.

Tokens are HS256 JWTs signed with JWT_SECRET carrying the user id in `sub`
and the role claim. Clients may present them either as
`Authorization: Bearer <jwt>` or via the httpOnly `token` cookie set at
login; the header wins when both are present.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import HTTPException

from config import settings

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def extract_token(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    """Pick the bearer token from the header, else the auth cookie."""
    return _parse_bearer_token(authorization) or (cookie_token or None)


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return settings.jwt_secret


def decode_access_token(token: str, *, verify_exp: bool = True) -> dict:
    """
    Verify signature, issuer and required claims.

    `verify_exp=False` is used by the refresh endpoint, which accepts an
    expired token as long as it was genuinely issued by us.
    """
    secret = _require_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"], "verify_exp": verify_exp},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token. Please log in again.")


def issue_access_token(*, user_id: str, role: str) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _require_secret(), algorithm="HS256")


def cookie_max_age() -> int:
    """Lifetime of the auth cookie in seconds (matches the token TTL)."""
    return settings.jwt_access_ttl_minutes * 60
