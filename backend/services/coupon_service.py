"""
Coupon service — validation, discount math and admin CRUD.

The same eligibility checks back both the public /validate endpoint and
order creation; order creation additionally locks the coupon row and
increments `used_count` in the order's transaction.
"""
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Coupon, utcnow
from domain.enums import DiscountType
from domain.errors import InvalidStateError, NotFoundError, ValidationError
from domain.responses import iso, money
from utils.validators import normalize_code

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

COUPON_FIELDS = (
    "description", "discount_type", "discount_value", "min_order_value", "max_discount",
    "usage_limit", "starts_at", "expires_at", "is_active",
)


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def serialize_coupon(c: Coupon) -> dict:
    return {
        "id": c.id,
        "code": c.code,
        "description": c.description,
        "discountType": c.discount_type,
        "discountValue": money(c.discount_value),
        "minOrderValue": money(c.min_order_value),
        "maxDiscount": money(c.max_discount),
        "usageLimit": c.usage_limit,
        "usedCount": c.used_count,
        "startsAt": iso(c.starts_at),
        "expiresAt": iso(c.expires_at),
        "isActive": c.is_active,
        "createdAt": iso(c.created_at),
    }


def check_eligibility(coupon: Coupon, order_total: Decimal, *, now: datetime | None = None) -> None:
    """Raise InvalidStateError when the coupon cannot be applied right now."""
    now = now or utcnow()
    if not coupon.is_active:
        raise InvalidStateError("This coupon is no longer active")
    if coupon.expires_at and coupon.expires_at < now:
        raise InvalidStateError("This coupon has expired")
    if coupon.starts_at and coupon.starts_at > now:
        raise InvalidStateError("This coupon is not yet valid")
    if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
        raise InvalidStateError("This coupon has reached its usage limit")
    if coupon.min_order_value and order_total < coupon.min_order_value:
        raise InvalidStateError(f"Minimum order value of {coupon.min_order_value:,.0f} is required")


def compute_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    """
    Percentage coupons take discount_value% of `amount`, capped by
    max_discount; fixed coupons take discount_value. Never exceeds amount.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = amount * Decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = Decimal(coupon.discount_value)
    return quantize(max(Decimal("0"), min(discount, amount)))


async def get_by_code(db: AsyncSession, code: str, *, for_update: bool = False) -> Coupon | None:
    q = select(Coupon).where(Coupon.code == normalize_code(code))
    if for_update:
        q = q.with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


async def validate_coupon(db: AsyncSession, *, code: str, order_total: Decimal) -> dict:
    coupon = await get_by_code(db, code)
    if not coupon:
        raise NotFoundError("Coupon", normalize_code(code))
    check_eligibility(coupon, order_total)
    discount = compute_discount(coupon, order_total)
    return {
        "valid": True,
        "coupon": {
            "code": coupon.code,
            "discountType": coupon.discount_type,
            "discountValue": money(coupon.discount_value),
            "description": coupon.description,
        },
        "discount": money(discount),
        "newTotal": money(order_total - discount),
    }


async def redeem(db: AsyncSession, *, code: str, subtotal: Decimal) -> tuple[Coupon, Decimal]:
    """
    Lock, validate and consume one use of a coupon inside the caller's
    transaction. Returns the coupon and the discount it grants.
    """
    coupon = await get_by_code(db, code, for_update=True)
    if not coupon:
        raise ValidationError("Invalid coupon code", field="couponCode")
    check_eligibility(coupon, subtotal)
    discount = compute_discount(coupon, subtotal)
    coupon.used_count = (coupon.used_count or 0) + 1
    await db.flush()
    return coupon, discount


# ── Admin ───────────────────────────────────────────────────────────

async def list_coupons(
    db: AsyncSession, *, limit: int, offset: int, status: str | None = None, search: str | None = None
) -> tuple[list[Coupon], int]:
    filters = []
    if status == "active":
        filters.append(Coupon.is_active == True)  # noqa: E712
    elif status == "inactive":
        filters.append(Coupon.is_active == False)  # noqa: E712
    if search:
        like = f"%{search}%"
        filters.append(or_(Coupon.code.ilike(like), Coupon.description.ilike(like)))
    total = (await db.execute(select(func.count(Coupon.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(Coupon).where(*filters).order_by(Coupon.created_at.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def get_coupon(db: AsyncSession, coupon_id: str) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon", coupon_id)
    return coupon


async def create_coupon(db: AsyncSession, *, code: str, **fields) -> Coupon:
    if await get_by_code(db, code):
        raise ValidationError("Coupon code already exists")
    coupon = Coupon(code=normalize_code(code), **{k: v for k, v in fields.items() if k in COUPON_FIELDS and v is not None})
    db.add(coupon)
    await db.flush()
    logger.info(f"Coupon created: {coupon.code}")
    return coupon


async def update_coupon(db: AsyncSession, *, coupon_id: str, code: str | None = None, **fields) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    if code and normalize_code(code) != coupon.code:
        if await get_by_code(db, code):
            raise ValidationError("Coupon code already exists")
        coupon.code = normalize_code(code)
    for key, value in fields.items():
        if key in COUPON_FIELDS and value is not None:
            setattr(coupon, key, value)
    await db.flush()
    return coupon


async def delete_coupon(db: AsyncSession, *, coupon_id: str) -> None:
    coupon = await get_coupon(db, coupon_id)
    await db.delete(coupon)
    await db.flush()


async def toggle_status(db: AsyncSession, *, coupon_id: str) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    coupon.is_active = not coupon.is_active
    await db.flush()
    return coupon
