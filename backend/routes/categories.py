"""
Category endpoints — cached public reads plus admin maintenance.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_cache, require_admin
from domain.responses import pagination_meta, success_response
from middleware.cache import cached_response, invalidate_catalog
from models import CategoryCreateRequest, CategoryUpdateRequest
from services import category_service, product_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
async def list_categories(
    request: Request,
    response: Response,
    parent_only: bool = Query(False, alias="parentOnly"),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        categories = await category_service.list_categories(db, parent_only=parent_only)
        return success_response(data={"categories": categories})

    return await cached_response(request, response, cache, build, ttl=settings.category_cache_ttl_seconds)


@router.get("/tree")
async def category_tree(
    request: Request,
    response: Response,
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        return success_response(data={"categories": await category_service.category_tree(db)})

    return await cached_response(request, response, cache, build, ttl=settings.category_cache_ttl_seconds)


@router.get("/slug/{slug}")
async def get_category_by_slug(
    slug: str,
    request: Request,
    response: Response,
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        category = await category_service.get_category_by_slug(db, slug)
        return success_response(data={"category": await category_service.category_detail(db, category)})

    return await cached_response(request, response, cache, build, ttl=settings.category_cache_ttl_seconds)


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    request: Request,
    response: Response,
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        category = await category_service.get_category(db, category_id)
        return success_response(data={"category": await category_service.category_detail(db, category)})

    return await cached_response(request, response, cache, build, ttl=settings.category_cache_ttl_seconds)


@router.get("/{category_id}/products")
async def category_products(
    category_id: str,
    request: Request,
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        category, products, total = await category_service.category_products(
            db,
            category_id=category_id,
            limit=limit,
            offset=(page - 1) * limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return success_response(data={
            "category": category_service.serialize_category(category),
            "products": [product_service.serialize_product(p) for p in products],
            "pagination": pagination_meta(page, limit, total),
        })

    return await cached_response(request, response, cache, build, ttl=settings.product_cache_ttl_seconds)


# ── Admin ───────────────────────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreateRequest,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.create_category(db, **body.model_dump())
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"category": category_service.serialize_category(category)}, message="Category created")


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    body: CategoryUpdateRequest,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.update_category(
        db, category_id=category_id, **body.model_dump(exclude_unset=True)
    )
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"category": category_service.serialize_category(category)}, message="Category updated")


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await category_service.delete_category(db, category_id=category_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(message="Category deleted successfully")


@router.patch("/{category_id}/toggle-status")
async def toggle_status(
    category_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.toggle_status(db, category_id=category_id)
    await db.commit()
    invalidate_catalog(cache)
    state = "activated" if category.is_active else "deactivated"
    return success_response(data={"category": category_service.serialize_category(category)}, message=f"Category {state}")
