"""
Search service — global product + category search for the header box.
"""
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Category, Product
from domain.responses import money

MIN_QUERY_LENGTH = 2


async def global_search(db: AsyncSession, *, q: str | None, limit: int = 5) -> dict:
    if not q or len(q) < MIN_QUERY_LENGTH:
        return {"products": [], "categories": [], "total": 0}

    like = f"%{q}%"
    products = (
        await db.execute(
            select(Product)
            .where(
                Product.is_active == True,  # noqa: E712
                or_(Product.name.ilike(like), Product.description.ilike(like), Product.sku.ilike(like)),
            )
            .limit(limit)
        )
    ).scalars().all()

    categories = (
        await db.execute(
            select(Category)
            .where(Category.is_active == True, Category.name.ilike(like))  # noqa: E712
            .limit(limit)
        )
    ).scalars().all()
    counts = {}
    if categories:
        res = await db.execute(
            select(Product.category_id, func.count(Product.id))
            .where(Product.category_id.in_([c.id for c in categories]))
            .group_by(Product.category_id)
        )
        counts = dict(res.all())

    found_products = [
        {
            "id": p.id,
            "name": p.name,
            "slug": p.slug,
            "price": money(p.price),
            "image": p.primary_image,
            "category": p.category.name if p.category else None,
            "type": "product",
        }
        for p in products
    ]
    found_categories = [
        {
            "id": c.id,
            "name": c.name,
            "slug": c.slug,
            "image": c.image,
            "productCount": counts.get(c.id, 0),
            "type": "category",
        }
        for c in categories
    ]
    return {
        "products": found_products,
        "categories": found_categories,
        "total": len(found_products) + len(found_categories),
    }
