"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import get_cache, get_realtime, get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_cache),
    realtime=Depends(get_realtime),
    scheduler=Depends(get_scheduler),
):
    """Health check — verifies database connectivity and background services."""
    components = {
        "scheduler": scheduler.get_status(),
        "realtime": realtime.get_status(),
        "cache": cache.stats(),
    }
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "status": "unhealthy",
                "database": False,
                "message": "Database unavailable",
                **components,
            },
        )
    return {
        "success": True,
        "status": "healthy",
        "database": True,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **components,
    }
