"""
Response caching helpers for public catalog GETs.

Cached bodies are keyed by the full request URL (path + query) in the
app's CacheService. Every response carries `X-Cache: HIT|MISS`.
"""
import logging
from typing import Any, Awaitable, Callable

from fastapi import Request, Response

from domain.constants import CATALOG_CACHE_FRAGMENTS

logger = logging.getLogger(__name__)


def cache_key(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


async def cached_response(
    request: Request,
    response: Response,
    cache,
    build: Callable[[], Awaitable[dict[str, Any]]],
    ttl: int | None = None,
) -> dict[str, Any]:
    """Serve a cached body or build, store and return a fresh one."""
    key = cache_key(request)
    body = cache.get(key)
    if body is not None:
        response.headers["X-Cache"] = "HIT"
        return body

    body = await build()
    cache.set(key, body, ttl)
    response.headers["X-Cache"] = "MISS"
    return body


def invalidate_catalog(cache) -> int:
    """Drop cached product, category and search responses."""
    return cache.invalidate(CATALOG_CACHE_FRAGMENTS)
