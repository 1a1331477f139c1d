"""
Product service — catalog listing, lookup and admin maintenance.

Stock rule: `in_stock` mirrors `quantity > 0` whenever quantity changes
through this service or the order workflow.
"""
import logging
from decimal import Decimal

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Category, OrderItem, Product, ProductImage, ProductSpec, Review
from domain.errors import NotFoundError, ValidationError
from domain.responses import iso, money
from utils.validators import is_uuid, slugify, timestamped_slug

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "name", "description", "short_description", "price", "original_price", "cost_price",
    "sku", "barcode", "quantity", "low_stock_threshold", "category_id", "featured",
    "is_active", "in_stock", "weight", "dimensions", "meta_title", "meta_description",
)

SORT_PRESETS = {
    "price-low": Product.price.asc(),
    "price-high": Product.price.desc(),
    "rating": Product.rating.desc(),
    "name": Product.name.asc(),
    "newest": Product.created_at.desc(),
}

SORTABLE_COLUMNS = {
    "createdAt": Product.created_at,
    "updatedAt": Product.updated_at,
    "price": Product.price,
    "name": Product.name,
    "rating": Product.rating,
    "quantity": Product.quantity,
}


def serialize_image(img: ProductImage) -> dict:
    return {"id": img.id, "url": img.url, "alt": img.alt, "isPrimary": img.is_primary, "sortOrder": img.sort_order}


def serialize_product(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "slug": p.slug,
        "description": p.description,
        "shortDescription": p.short_description,
        "price": money(p.price),
        "originalPrice": money(p.original_price),
        "costPrice": money(p.cost_price),
        "sku": p.sku,
        "barcode": p.barcode,
        "quantity": p.quantity,
        "lowStockThreshold": p.low_stock_threshold,
        "inStock": p.in_stock,
        "isActive": p.is_active,
        "featured": p.featured,
        "rating": float(p.rating or 0),
        "reviewCount": p.review_count,
        "weight": p.weight,
        "dimensions": p.dimensions,
        "metaTitle": p.meta_title,
        "metaDescription": p.meta_description,
        "image": p.primary_image,
        "images": [serialize_image(i) for i in p.images],
        "specs": [{"id": s.id, "name": s.name, "value": s.value, "sortOrder": s.sort_order} for s in p.specs],
        "category": (
            {"id": p.category.id, "name": p.category.name, "slug": p.category.slug}
            if p.category else None
        ),
        "categoryId": p.category_id,
        "createdAt": iso(p.created_at),
        "updatedAt": iso(p.updated_at),
    }


# ── Lookup ──────────────────────────────────────────────────────────

async def get_product(db: AsyncSession, product_id: str, *, fresh: bool = False) -> Product:
    q = select(Product).where(Product.id == product_id)
    if fresh:
        q = q.execution_options(populate_existing=True)
    product = (await db.execute(q)).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", product_id)
    return product


async def get_product_by_id_or_slug(db: AsyncSession, key: str) -> Product:
    column = Product.id if is_uuid(key) else Product.slug
    product = (await db.execute(select(Product).where(column == key))).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", key)
    return product


async def product_detail(db: AsyncSession, product: Product) -> dict:
    """Full product view: parent category plus the 10 newest approved reviews."""
    data = serialize_product(product)
    if product.category and product.category.parent_id:
        parent = await db.get(Category, product.category.parent_id)
        if parent:
            data["category"]["parent"] = {"id": parent.id, "name": parent.name, "slug": parent.slug}

    res = await db.execute(
        select(Review)
        .where(Review.product_id == product.id, Review.is_approved == True)  # noqa: E712
        .order_by(Review.created_at.desc())
        .limit(10)
    )
    data["reviews"] = [
        {
            "id": r.id,
            "rating": r.rating,
            "title": r.title,
            "comment": r.comment,
            "isVerified": r.is_verified,
            "createdAt": iso(r.created_at),
            "user": {"firstName": r.user.first_name, "lastName": r.user.last_name, "avatar": r.user.avatar},
        }
        for r in res.scalars().all()
    ]
    return data


# ── Listing ─────────────────────────────────────────────────────────

def _category_filter(category: str):
    return Product.category_id.in_(
        select(Category.id).where(
            or_(Category.slug == category.lower(), func.lower(Category.name) == category.lower())
        )
    )


async def list_products(
    db: AsyncSession,
    *,
    limit: int = 12,
    offset: int = 0,
    category: str | None = None,
    search: str | None = None,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
    featured: bool | None = None,
    in_stock: bool | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    include_inactive: bool = False,
) -> tuple[list[Product], int]:
    filters = []
    if not include_inactive:
        filters.append(Product.is_active == True)  # noqa: E712
    if category:
        filters.append(_category_filter(category))
    if search:
        like = f"%{search}%"
        filters.append(or_(Product.name.ilike(like), Product.description.ilike(like)))
    if min_price is not None:
        filters.append(Product.price >= min_price)
    if max_price is not None:
        filters.append(Product.price <= max_price)
    if featured:
        filters.append(Product.featured == True)  # noqa: E712
    if in_stock:
        filters.append(Product.in_stock == True)  # noqa: E712

    if sort_by in SORT_PRESETS:
        order_by = SORT_PRESETS[sort_by]
    else:
        column = SORTABLE_COLUMNS.get(sort_by, Product.created_at)
        order_by = column.asc() if sort_order == "asc" else column.desc()

    total = (await db.execute(select(func.count(Product.id)).where(*filters))).scalar_one()
    res = await db.execute(select(Product).where(*filters).order_by(order_by).limit(limit).offset(offset))
    return res.scalars().all(), total


async def featured_products(db: AsyncSession, *, limit: int = 8) -> list[Product]:
    res = await db.execute(
        select(Product)
        .where(Product.is_active == True, Product.featured == True)  # noqa: E712
        .order_by(Product.rating.desc())
        .limit(limit)
    )
    return res.scalars().all()


async def quick_search(db: AsyncSession, *, q: str | None, limit: int = 10) -> list[dict]:
    """Typeahead search; queries shorter than two characters return nothing."""
    if not q or len(q) < 2:
        return []
    like = f"%{q}%"
    category_ids = select(Category.id).where(Category.name.ilike(like))
    res = await db.execute(
        select(Product)
        .where(
            Product.is_active == True,  # noqa: E712
            or_(Product.name.ilike(like), Product.description.ilike(like), Product.category_id.in_(category_ids)),
        )
        .limit(limit)
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "slug": p.slug,
            "price": money(p.price),
            "image": p.primary_image,
            "category": p.category.name if p.category else None,
        }
        for p in res.scalars().all()
    ]


# ── Admin Writes ────────────────────────────────────────────────────

async def _unique_slug(db: AsyncSession, name: str, *, exclude_id: str | None = None) -> str:
    slug = slugify(name)
    if not slug:
        raise ValidationError("Name must contain letters or digits", field="name")
    q = select(Product.id).where(Product.slug == slug)
    if exclude_id:
        q = q.where(Product.id != exclude_id)
    if (await db.execute(q)).first():
        return timestamped_slug(name)
    return slug


async def _ensure_category(db: AsyncSession, category_id: str | None) -> None:
    if category_id and not await db.get(Category, category_id):
        raise NotFoundError("Category", category_id)


def _build_images(images: list[dict], default_alt: str) -> list[ProductImage]:
    return [
        ProductImage(
            url=img["url"],
            alt=img.get("alt") or default_alt,
            is_primary=bool(img.get("is_primary")) or index == 0,
            sort_order=index,
        )
        for index, img in enumerate(images)
    ]


def _build_specs(specs: list[dict]) -> list[ProductSpec]:
    return [
        ProductSpec(name=spec["name"], value=spec["value"], sort_order=index)
        for index, spec in enumerate(specs)
    ]


async def create_product(
    db: AsyncSession,
    *,
    name: str,
    price: Decimal,
    quantity: int = 0,
    images: list[dict] | None = None,
    specs: list[dict] | None = None,
    **fields,
) -> Product:
    await _ensure_category(db, fields.get("category_id"))
    product = Product(
        name=name,
        slug=await _unique_slug(db, name),
        price=price,
        quantity=quantity or 0,
        in_stock=(quantity or 0) > 0,
        images=_build_images(images or [], name),
        specs=_build_specs(specs or []),
        **{k: v for k, v in fields.items() if k in PRODUCT_FIELDS and v is not None},
    )
    db.add(product)
    await db.flush()
    logger.info(f"Product created: {product.slug}")
    return product


async def update_product(
    db: AsyncSession,
    *,
    product_id: str,
    images: list[dict] | None = None,
    specs: list[dict] | None = None,
    **fields,
) -> Product:
    """Update only the provided fields; images/specs are replaced wholesale when given."""
    product = await get_product(db, product_id)

    name = fields.get("name")
    if name and name != product.name:
        product.slug = await _unique_slug(db, name, exclude_id=product.id)
    if "category_id" in fields:
        await _ensure_category(db, fields["category_id"])

    for key, value in fields.items():
        if key in PRODUCT_FIELDS and value is not None:
            setattr(product, key, value)

    if fields.get("quantity") is not None:
        product.in_stock = fields["quantity"] > 0

    if specs is not None:
        product.specs = _build_specs(specs)
    if images is not None:
        product.images = _build_images(images, product.name)

    await db.flush()
    return product


async def delete_product(db: AsyncSession, *, product_id: str) -> None:
    product = await get_product(db, product_id)
    # Order lines keep their snapshot; only the product reference goes away
    await db.execute(update(OrderItem).where(OrderItem.product_id == product_id).values(product_id=None))
    await db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    await db.execute(delete(Review).where(Review.product_id == product_id))
    await db.delete(product)
    await db.flush()
    logger.info(f"Product deleted: {product.slug}")


async def toggle_featured(db: AsyncSession, *, product_id: str) -> Product:
    product = await get_product(db, product_id)
    product.featured = not product.featured
    await db.flush()
    return product


async def toggle_status(db: AsyncSession, *, product_id: str) -> Product:
    product = await get_product(db, product_id)
    product.is_active = not product.is_active
    await db.flush()
    return product


async def add_images(db: AsyncSession, *, product_id: str, images: list[dict]) -> Product:
    if not images:
        raise ValidationError("Images array is required")
    product = await get_product(db, product_id)
    start = max((i.sort_order for i in product.images), default=-1) + 1
    for index, img in enumerate(images):
        product.images.append(
            ProductImage(url=img["url"], alt=img.get("alt"), is_primary=False, sort_order=start + index)
        )
    await db.flush()
    return product


async def delete_image(db: AsyncSession, *, product_id: str, image_id: str) -> None:
    res = await db.execute(
        select(ProductImage).where(ProductImage.id == image_id, ProductImage.product_id == product_id)
    )
    image = res.scalar_one_or_none()
    if not image:
        raise NotFoundError("Image", image_id)
    await db.delete(image)
    await db.flush()
