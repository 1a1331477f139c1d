"""
Cart service — per-user cart lines with stock checks.
"""
import logging
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Product
from domain.errors import InvalidStateError, NotFoundError
from domain.responses import money
from utils.validators import validate_uuid

logger = logging.getLogger(__name__)


def serialize_item(item: CartItem) -> dict:
    p = item.product
    return {
        "id": item.id,
        "productId": item.product_id,
        "quantity": item.quantity,
        "product": {
            "id": p.id,
            "name": p.name,
            "slug": p.slug,
            "price": money(p.price),
            "originalPrice": money(p.original_price),
            "image": p.primary_image,
            "category": p.category.name if p.category else None,
            "inStock": p.in_stock,
            "availableQuantity": p.quantity,
            "rating": float(p.rating or 0),
        },
        "subtotal": money(p.price * item.quantity),
    }


async def list_items(db: AsyncSession, *, user_id: str) -> list[CartItem]:
    res = await db.execute(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return res.scalars().all()


async def get_cart(db: AsyncSession, *, user_id: str) -> dict:
    items = await list_items(db, user_id=user_id)
    subtotal = sum((i.product.price * i.quantity for i in items), Decimal("0"))
    return {
        "items": [serialize_item(i) for i in items],
        "summary": {
            "itemCount": sum(i.quantity for i in items),
            "subtotal": money(subtotal),
        },
    }


async def _find(db: AsyncSession, user_id: str, product_id: str) -> CartItem | None:
    res = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    return res.scalar_one_or_none()


async def add_item(db: AsyncSession, *, user_id: str, product_id: str, quantity: int = 1) -> CartItem:
    """Add a product; an existing line is merged by summing quantities."""
    validate_uuid(product_id, field="productId")
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    if not product.is_active:
        raise InvalidStateError("Product is not available")
    if not product.in_stock or product.quantity < quantity:
        raise InvalidStateError("Insufficient stock")

    item = await _find(db, user_id, product_id)
    if item:
        new_quantity = item.quantity + quantity
        if product.quantity < new_quantity:
            raise InvalidStateError("Cannot add more items. Insufficient stock.")
        item.quantity = new_quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity, product=product)
        db.add(item)
    await db.flush()
    return item


async def update_item(db: AsyncSession, *, user_id: str, product_id: str, quantity: int) -> CartItem:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    if product.quantity < quantity:
        raise InvalidStateError(f"Only {product.quantity} items available")

    item = await _find(db, user_id, product_id)
    if not item:
        raise NotFoundError("Cart item", product_id)
    item.quantity = quantity
    await db.flush()
    return item


async def remove_item(db: AsyncSession, *, user_id: str, product_id: str) -> None:
    item = await _find(db, user_id, product_id)
    if not item:
        raise NotFoundError("Cart item", product_id)
    await db.delete(item)
    await db.flush()


async def clear_cart(db: AsyncSession, *, user_id: str) -> None:
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    await db.flush()


async def sync_cart(db: AsyncSession, *, user_id: str, items: list[dict]) -> dict:
    """
    Merge a client-side (guest) cart into the stored one.

    Each line is clamped to available stock; unavailable products are
    reported in `failed` instead of aborting the whole sync.
    """
    results = {"synced": [], "failed": []}
    for line in items:
        product_id = line["product_id"]
        product = await db.get(Product, product_id)
        if not product or not product.is_active:
            results["failed"].append({"productId": product_id, "reason": "Product not available"})
            continue

        quantity = min(line["quantity"], product.quantity)
        if quantity < 1:
            results["failed"].append({"productId": product_id, "reason": "Out of stock"})
            continue

        item = await _find(db, user_id, product_id)
        if item:
            item.quantity = quantity
        else:
            db.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity, product=product))
        await db.flush()
        results["synced"].append({"productId": product_id, "quantity": quantity})
    return results
