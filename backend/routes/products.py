"""
Product endpoints — public catalog reads (cached) and admin maintenance.

Admin writes invalidate every cached catalog response.
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_cache, get_optional_user, is_admin, require_admin
from domain.responses import pagination_meta, success_response
from middleware.cache import cached_response, invalidate_catalog
from models import AddImagesRequest, ProductCreateRequest, ProductUpdateRequest
from services import product_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/products", tags=["products"])


# ── Public ──────────────────────────────────────────────────────────

@router.get("")
async def list_products(
    request: Request,
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    featured: Optional[bool] = None,
    in_stock: Optional[bool] = Query(None, alias="inStock"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    user: Optional[User] = Depends(get_optional_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    admin_view = include_inactive and is_admin(user)

    async def build():
        products, total = await product_service.list_products(
            db,
            limit=limit,
            offset=(page - 1) * limit,
            category=category,
            search=search,
            min_price=min_price,
            max_price=max_price,
            featured=featured,
            in_stock=in_stock,
            sort_by=sort_by,
            sort_order=sort_order,
            include_inactive=admin_view,
        )
        return success_response(data={
            "products": [product_service.serialize_product(p) for p in products],
            "pagination": pagination_meta(page, limit, total),
        })

    if admin_view:
        return await build()
    return await cached_response(request, response, cache, build, ttl=settings.product_cache_ttl_seconds)


@router.get("/featured")
async def featured_products(
    request: Request,
    response: Response,
    limit: int = Query(8, ge=1, le=50),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        products = await product_service.featured_products(db, limit=limit)
        return success_response(data={"products": [product_service.serialize_product(p) for p in products]})

    return await cached_response(request, response, cache, build, ttl=settings.product_cache_ttl_seconds)


@router.get("/search")
async def quick_search(
    request: Request,
    response: Response,
    q: Optional[str] = None,
    limit: int = Query(10, ge=1, le=50),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        return success_response(data={"products": await product_service.quick_search(db, q=q, limit=limit)})

    return await cached_response(request, response, cache, build, ttl=60)


@router.get("/slug/{slug}")
async def get_product_by_slug(
    slug: str,
    request: Request,
    response: Response,
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    async def build():
        product = await product_service.get_product_by_id_or_slug(db, slug)
        return success_response(data={"product": await product_service.product_detail(db, product)})

    return await cached_response(request, response, cache, build, ttl=settings.product_cache_ttl_seconds)


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    request: Request,
    response: Response,
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    """Lookup by id or slug."""
    async def build():
        product = await product_service.get_product_by_id_or_slug(db, product_id)
        return success_response(data={"product": await product_service.product_detail(db, product)})

    return await cached_response(request, response, cache, build, ttl=settings.product_cache_ttl_seconds)


# ── Admin ───────────────────────────────────────────────────────────

async def _fresh(db: AsyncSession, product_id: str) -> dict:
    product = await product_service.get_product(db, product_id, fresh=True)
    return product_service.serialize_product(product)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreateRequest,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    fields = body.model_dump(exclude={"images", "specs"})
    product = await product_service.create_product(
        db,
        images=[i.model_dump() for i in body.images],
        specs=[s.model_dump() for s in body.specs],
        **fields,
    )
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"product": await _fresh(db, product.id)}, message="Product created")


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    body: ProductUpdateRequest,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    fields = body.model_dump(exclude_unset=True, exclude={"images", "specs"})
    await product_service.update_product(
        db,
        product_id=product_id,
        images=[i.model_dump() for i in body.images] if body.images is not None else None,
        specs=[s.model_dump() for s in body.specs] if body.specs is not None else None,
        **fields,
    )
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"product": await _fresh(db, product_id)}, message="Product updated")


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await product_service.delete_product(db, product_id=product_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(message="Product deleted successfully")


@router.patch("/{product_id}/toggle-featured")
async def toggle_featured(
    product_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.toggle_featured(db, product_id=product_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"product": product_service.serialize_product(product)})


@router.patch("/{product_id}/toggle-status")
async def toggle_status(
    product_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.toggle_status(db, product_id=product_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"product": product_service.serialize_product(product)})


@router.post("/{product_id}/images")
async def add_images(
    product_id: str,
    body: AddImagesRequest,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await product_service.add_images(db, product_id=product_id, images=[i.model_dump() for i in body.images])
    await db.commit()
    invalidate_catalog(cache)
    product = await product_service.get_product(db, product_id, fresh=True)
    return success_response(data={"images": [product_service.serialize_image(i) for i in product.images]})


@router.delete("/{product_id}/images/{image_id}")
async def delete_image(
    product_id: str,
    image_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await product_service.delete_image(db, product_id=product_id, image_id=image_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(message="Image deleted")
