"""
Thread pool for the few blocking calls the API makes: bcrypt hashing and
checks, and upload file writes/deletes.
"""
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_pool: ThreadPoolExecutor | None = None


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(max_workers=settings.blocking_workers, thread_name_prefix="storefront_io")
        logger.info(f"Blocking-call pool started ({settings.blocking_workers} workers)")
    return _pool


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await `func(*args, **kwargs)` on the pool instead of the event loop."""
    call = functools.partial(func, *args, **kwargs)
    return await asyncio.get_running_loop().run_in_executor(_get_pool(), call)


def shutdown_executor() -> None:
    """Called from the app lifespan on shutdown; the pool restarts lazily."""
    global _pool
    if _pool is None:
        return
    _pool.shutdown(wait=True)
    _pool = None
    logger.info("Blocking-call pool stopped")
