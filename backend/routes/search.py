"""
Global search endpoint (products + categories).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_cache
from domain.responses import success_response
from middleware.cache import cached_response
from services import search_service

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("")
async def global_search(
    request: Request,
    response: Response,
    q: Optional[str] = None,
    limit: int = Query(5, ge=1, le=20),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        return success_response(data=await search_service.global_search(db, q=q, limit=limit))

    return await cached_response(request, response, cache, build, ttl=60)
