"""
Review endpoints — public product reviews, customer authoring and admin
moderation. Moderation changes the product rating, so those writes drop
cached catalog responses.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_cache, get_current_user, pagination_params, require_admin
from domain.responses import pagination_meta, paginated_response, success_response
from middleware.cache import invalidate_catalog
from models import ReviewCreateRequest, ReviewUpdateRequest
from services import review_service

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.get("/product/{product_id}")
async def product_reviews(
    product_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
):
    reviews, total, distribution = await review_service.product_reviews(
        db,
        product_id=product_id,
        limit=limit,
        offset=(page - 1) * limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_response(data={
        "reviews": [review_service.serialize_review(r) for r in reviews],
        "ratingDistribution": distribution,
        "pagination": pagination_meta(page, limit, total),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.create_review(
        db,
        user_id=user.id,
        product_id=body.product_id,
        rating=body.rating,
        title=body.title,
        comment=body.comment,
    )
    await db.commit()
    review = await review_service.get_review(db, review.id, fresh=True)
    return success_response(
        data={"review": review_service.serialize_review(review)},
        message="Review submitted and pending approval",
    )


@router.put("/{review_id}")
async def update_review(
    review_id: str,
    body: ReviewUpdateRequest,
    user: User = Depends(get_current_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.update_review(
        db,
        review_id=review_id,
        user_id=user.id,
        rating=body.rating,
        title=body.title,
        comment=body.comment,
    )
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"review": review_service.serialize_review(review)}, message="Review updated")


@router.delete("/{review_id}")
async def delete_review(
    review_id: str,
    user: User = Depends(get_current_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await review_service.delete_review(db, review_id=review_id, user_id=user.id, role=user.role)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(message="Review deleted")


# ── Admin ───────────────────────────────────────────────────────────

@router.get("")
async def list_reviews(
    status_filter: Optional[str] = Query(None, alias="status"),
    product_id: Optional[str] = Query(None, alias="productId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reviews, total = await review_service.list_reviews(
        db,
        limit=page["limit"],
        offset=page["offset"],
        status=status_filter,
        product_id=product_id,
        user_id=user_id,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paginated_response(
        "reviews",
        [review_service.serialize_review(r, include_product=True) for r in reviews],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.patch("/{review_id}/approve")
async def approve_review(
    review_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.approve_review(db, review_id=review_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(data={"review": review_service.serialize_review(review)}, message="Review approved")


@router.patch("/{review_id}/reject")
async def reject_review(
    review_id: str,
    _: User = Depends(require_admin),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db),
):
    await review_service.reject_review(db, review_id=review_id)
    await db.commit()
    invalidate_catalog(cache)
    return success_response(message="Review rejected and removed")
