"""
Review service — moderated product reviews and the denormalized
product rating.

Only approved reviews are public and only they count towards
Product.rating / Product.review_count, which are recomputed whenever the
approved set changes.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Product, Review
from domain.enums import ADMIN_ROLES
from domain.errors import NotFoundError, PermissionDeniedError, ValidationError
from domain.responses import iso
from services.order_service import has_delivered_purchase

logger = logging.getLogger(__name__)

REVIEW_SORT_FIELDS = {
    "createdAt": Review.created_at,
    "rating": Review.rating,
}


def serialize_review(r: Review, *, include_product: bool = False) -> dict:
    data = {
        "id": r.id,
        "productId": r.product_id,
        "userId": r.user_id,
        "rating": r.rating,
        "title": r.title,
        "comment": r.comment,
        "isVerified": r.is_verified,
        "isApproved": r.is_approved,
        "createdAt": iso(r.created_at),
        "updatedAt": iso(r.updated_at),
        "user": {
            "id": r.user.id,
            "email": r.user.email,
            "firstName": r.user.first_name,
            "lastName": r.user.last_name,
            "avatar": r.user.avatar,
        } if r.user else None,
    }
    if include_product:
        data["product"] = {"id": r.product.id, "name": r.product.name, "slug": r.product.slug} if r.product else None
    return data


async def recompute_rating(db: AsyncSession, product_id: str) -> None:
    avg, count = (
        await db.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(
                Review.product_id == product_id, Review.is_approved == True  # noqa: E712
            )
        )
    ).one()
    product = await db.get(Product, product_id)
    if product:
        product.rating = round(float(avg or 0), 2)
        product.review_count = count
        await db.flush()


async def product_reviews(
    db: AsyncSession,
    *,
    product_id: str,
    limit: int,
    offset: int,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[Review], int, dict[int, int]]:
    """Approved reviews of a product plus the 1-5 star distribution."""
    where = (Review.product_id == product_id, Review.is_approved == True)  # noqa: E712
    column = REVIEW_SORT_FIELDS.get(sort_by, Review.created_at)
    order_by = column.asc() if sort_order == "asc" else column.desc()

    total = (await db.execute(select(func.count(Review.id)).where(*where))).scalar_one()
    res = await db.execute(select(Review).where(*where).order_by(order_by).limit(limit).offset(offset))

    distribution = {star: 0 for star in range(1, 6)}
    grouped = await db.execute(select(Review.rating, func.count(Review.id)).where(*where).group_by(Review.rating))
    for rating, count in grouped.all():
        distribution[rating] = count
    return res.scalars().all(), total, distribution


async def get_review(db: AsyncSession, review_id: str, *, fresh: bool = False) -> Review:
    q = select(Review).where(Review.id == review_id)
    if fresh:
        q = q.execution_options(populate_existing=True)
    review = (await db.execute(q)).scalar_one_or_none()
    if not review:
        raise NotFoundError("Review", review_id)
    return review


async def create_review(
    db: AsyncSession, *, user_id: str, product_id: str, rating: int, title: str | None, comment: str | None
) -> Review:
    if not await db.get(Product, product_id):
        raise NotFoundError("Product", product_id)

    existing = await db.execute(select(Review.id).where(Review.product_id == product_id, Review.user_id == user_id))
    if existing.first():
        raise ValidationError("You have already reviewed this product")

    review = Review(
        product_id=product_id,
        user_id=user_id,
        rating=rating,
        title=title,
        comment=comment,
        is_verified=await has_delivered_purchase(db, user_id=user_id, product_id=product_id),
        is_approved=False,
    )
    db.add(review)
    await db.flush()
    logger.info(f"Review {review.id} submitted for product {product_id} (verified={review.is_verified})")
    return review


async def update_review(
    db: AsyncSession, *, review_id: str, user_id: str, rating: int | None, title: str | None, comment: str | None
) -> Review:
    """Owner edit; the review goes back to moderation."""
    review = await get_review(db, review_id)
    if review.user_id != user_id:
        raise PermissionDeniedError("Not authorized to update this review")

    was_approved = review.is_approved
    if rating is not None:
        review.rating = rating
    if title is not None:
        review.title = title
    if comment is not None:
        review.comment = comment
    review.is_approved = False
    await db.flush()
    if was_approved:
        await recompute_rating(db, review.product_id)
    return review


async def delete_review(db: AsyncSession, *, review_id: str, user_id: str, role: str) -> None:
    review = await get_review(db, review_id)
    if review.user_id != user_id and role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not authorized to delete this review")
    product_id = review.product_id
    await db.delete(review)
    await db.flush()
    await recompute_rating(db, product_id)


# ── Admin ───────────────────────────────────────────────────────────

async def list_reviews(
    db: AsyncSession,
    *,
    limit: int,
    offset: int,
    status: str | None = None,
    product_id: str | None = None,
    user_id: str | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[Review], int]:
    filters = []
    if status == "pending":
        filters.append(Review.is_approved == False)  # noqa: E712
    elif status == "approved":
        filters.append(Review.is_approved == True)  # noqa: E712
    if product_id:
        filters.append(Review.product_id == product_id)
    if user_id:
        filters.append(Review.user_id == user_id)

    column = REVIEW_SORT_FIELDS.get(sort_by, Review.created_at)
    order_by = column.asc() if sort_order == "asc" else column.desc()
    total = (await db.execute(select(func.count(Review.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(Review)
        .options(selectinload(Review.product))
        .where(*filters)
        .order_by(order_by)
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all(), total


async def approve_review(db: AsyncSession, *, review_id: str) -> Review:
    review = await get_review(db, review_id)
    review.is_approved = True
    await db.flush()
    await recompute_rating(db, review.product_id)
    return review


async def reject_review(db: AsyncSession, *, review_id: str) -> None:
    """Rejection deletes the review."""
    review = await get_review(db, review_id)
    product_id = review.product_id
    was_approved = review.is_approved
    await db.delete(review)
    await db.flush()
    if was_approved:
        await recompute_rating(db, product_id)
