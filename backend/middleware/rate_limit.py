"""
In-memory rate limiting for the Storefront API.

Two layers share one sliding-window counter per app:
    - a global limit on every /api request per client IP
      (settings.rate_limit_max_requests per settings.rate_limit_window_seconds)
    - tighter per-route limits on credential endpoints via `rate_limit()`

The limiter lives on app.state so each app (and each test) gets its own
counters. Not suitable for multi-worker deployments.
"""
import time
import logging
from collections import defaultdict

from fastapi import Request
from fastapi.responses import JSONResponse

from config import settings
from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.

    Tracks request timestamps per key (e.g. "IP" or "IP:route").
    """

    def __init__(self, clock=time.monotonic):
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._clock = clock

    def _cleanup(self, key: str, window_seconds: int):
        """Remove expired timestamps from the window."""
        cutoff = self._clock() - window_seconds
        live = [ts for ts in self._requests.get(key, ()) if ts > cutoff]
        if live:
            self._requests[key] = live
        else:
            self._requests.pop(key, None)

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record a hit; False when the key is over its limit."""
        self._cleanup(key, window_seconds)
        if len(self._requests.get(key, ())) >= max_requests:
            return False
        self._requests[key].append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests.get(key, ())))

    def reset(self):
        self._requests.clear()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _limiter(request: Request) -> RateLimiter | None:
    return getattr(request.app.state, "rate_limiter", None)


async def api_rate_limit_middleware(request: Request, call_next):
    """Global per-IP limit on /api routes."""
    limiter = _limiter(request)
    if limiter is None or not request.url.path.startswith("/api"):
        return await call_next(request)

    max_requests = settings.rate_limit_max_requests
    window = settings.rate_limit_window_seconds
    key = _client_ip(request)
    if not limiter.check(key, max_requests, window):
        logger.warning(f"Global rate limit exceeded: {key} ({max_requests}/{window}s)")
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": "Too many requests from this IP, please try again later.",
                "code": "rate_limit",
            },
            headers={"Retry-After": str(window)},
        )
    return await call_next(request)


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory for per-route limits.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit(10, 900))])
    """
    async def _check_rate_limit(request: Request):
        limiter = _limiter(request)
        if limiter is None:
            return
        client_ip = _client_ip(request)
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"retryAfter": window_seconds},
            )

    return _check_rate_limit
