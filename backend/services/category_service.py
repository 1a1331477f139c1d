"""
Category service — taxonomy reads (flat, tree, per-category products) and
admin maintenance.

Parent/children are resolved from one flat query plus a product-count
aggregate, so no relationship is lazily loaded inside async code.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Category, Product
from domain.errors import InvalidStateError, NotFoundError, ValidationError
from domain.responses import iso
from utils.validators import slugify, timestamped_slug

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("name", "description", "icon", "image", "parent_id", "sort_order", "is_active")


def _brief(c: Category | None) -> dict | None:
    if c is None:
        return None
    return {"id": c.id, "name": c.name, "slug": c.slug}


def serialize_category(c: Category, *, product_count: int | None = None) -> dict:
    data = {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "icon": c.icon,
        "image": c.image,
        "parentId": c.parent_id,
        "sortOrder": c.sort_order,
        "isActive": c.is_active,
        "createdAt": iso(c.created_at),
    }
    if product_count is not None:
        data["productCount"] = product_count
    return data


async def _product_counts(db: AsyncSession) -> dict[str, int]:
    res = await db.execute(
        select(Product.category_id, func.count(Product.id))
        .where(Product.category_id.is_not(None))
        .group_by(Product.category_id)
    )
    return {category_id: count for category_id, count in res.all()}


async def _all(db: AsyncSession, *, active_only: bool = True) -> list[Category]:
    q = select(Category).order_by(Category.sort_order.asc(), Category.name.asc())
    if active_only:
        q = q.where(Category.is_active == True)  # noqa: E712
    return (await db.execute(q)).scalars().all()


def _expand(c: Category, by_id: dict[str, Category], children_of: dict[str, list[Category]], counts: dict[str, int]) -> dict:
    data = serialize_category(c, product_count=counts.get(c.id, 0))
    data["parent"] = _brief(by_id.get(c.parent_id)) if c.parent_id else None
    data["children"] = [
        serialize_category(child, product_count=counts.get(child.id, 0))
        for child in children_of.get(c.id, [])
    ]
    return data


async def list_categories(db: AsyncSession, *, parent_only: bool = False) -> list[dict]:
    categories = await _all(db)
    counts = await _product_counts(db)
    by_id = {c.id: c for c in categories}
    children_of: dict[str, list[Category]] = {}
    for c in categories:
        if c.parent_id:
            children_of.setdefault(c.parent_id, []).append(c)
    return [
        _expand(c, by_id, children_of, counts)
        for c in categories
        if not parent_only or c.parent_id is None
    ]


async def category_tree(db: AsyncSession) -> list[dict]:
    """Top-level categories with their active children nested."""
    return await list_categories(db, parent_only=True)


async def get_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


async def category_detail(db: AsyncSession, category: Category) -> dict:
    counts = await _product_counts(db)
    parent = await db.get(Category, category.parent_id) if category.parent_id else None
    children = (
        await db.execute(
            select(Category)
            .where(Category.parent_id == category.id, Category.is_active == True)  # noqa: E712
            .order_by(Category.sort_order.asc(), Category.name.asc())
        )
    ).scalars().all()
    data = serialize_category(category, product_count=counts.get(category.id, 0))
    data["parent"] = _brief(parent)
    data["children"] = [serialize_category(ch, product_count=counts.get(ch.id, 0)) for ch in children]
    return data


async def get_category_by_slug(db: AsyncSession, slug: str) -> Category:
    category = (await db.execute(select(Category).where(Category.slug == slug))).scalar_one_or_none()
    if not category:
        raise NotFoundError("Category", slug)
    return category


async def category_products(
    db: AsyncSession,
    *,
    category_id: str,
    limit: int,
    offset: int,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[Category, list[Product], int]:
    """Active products of a category and of its direct children."""
    from services.product_service import SORTABLE_COLUMNS

    category = await get_category(db, category_id)
    child_ids = (await db.execute(select(Category.id).where(Category.parent_id == category_id))).scalars().all()
    ids = [category_id, *child_ids]
    where = (Product.is_active == True, Product.category_id.in_(ids))  # noqa: E712

    column = SORTABLE_COLUMNS.get(sort_by, Product.created_at)
    order_by = column.asc() if sort_order == "asc" else column.desc()
    total = (await db.execute(select(func.count(Product.id)).where(*where))).scalar_one()
    res = await db.execute(select(Product).where(*where).order_by(order_by).limit(limit).offset(offset))
    return category, res.scalars().all(), total


async def _unique_slug(db: AsyncSession, name: str, *, exclude_id: str | None = None) -> str:
    slug = slugify(name)
    if not slug:
        raise ValidationError("Name must contain letters or digits", field="name")
    q = select(Category.id).where(Category.slug == slug)
    if exclude_id:
        q = q.where(Category.id != exclude_id)
    if (await db.execute(q)).first():
        return timestamped_slug(name)
    return slug


async def create_category(db: AsyncSession, *, name: str, parent_id: str | None = None, **fields) -> Category:
    if parent_id:
        await get_category(db, parent_id)
    category = Category(
        name=name,
        slug=await _unique_slug(db, name),
        parent_id=parent_id,
        **{k: v for k, v in fields.items() if k in CATEGORY_FIELDS and v is not None},
    )
    db.add(category)
    await db.flush()
    logger.info(f"Category created: {category.slug}")
    return category


async def update_category(db: AsyncSession, *, category_id: str, **fields) -> Category:
    category = await get_category(db, category_id)

    parent_id = fields.get("parent_id")
    if parent_id == category_id:
        raise ValidationError("Category cannot be its own parent")
    if parent_id:
        await get_category(db, parent_id)

    name = fields.get("name")
    if name and name != category.name:
        category.slug = await _unique_slug(db, name, exclude_id=category.id)

    for key, value in fields.items():
        if key in CATEGORY_FIELDS and value is not None:
            setattr(category, key, value)
    await db.flush()
    return category


async def delete_category(db: AsyncSession, *, category_id: str) -> None:
    category = await get_category(db, category_id)

    product_count = (await db.execute(select(func.count(Product.id)).where(Product.category_id == category_id))).scalar_one()
    if product_count:
        raise InvalidStateError(
            f"Cannot delete category with {product_count} products. Move or delete products first."
        )
    child_count = (await db.execute(select(func.count(Category.id)).where(Category.parent_id == category_id))).scalar_one()
    if child_count:
        raise InvalidStateError(
            f"Cannot delete category with {child_count} subcategories. Delete subcategories first."
        )

    # Bulk delete so the (empty) children collection is not lazy-loaded
    await db.execute(delete(Category).where(Category.id == category.id))
    await db.flush()
    logger.info(f"Category deleted: {category.slug}")


async def toggle_status(db: AsyncSession, *, category_id: str) -> Category:
    category = await get_category(db, category_id)
    category.is_active = not category.is_active
    await db.flush()
    return category
