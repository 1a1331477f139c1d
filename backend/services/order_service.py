"""
Order service — checkout, cancellation, admin transitions and delivery
confirmation.

Every write here is one unit of work on the caller's session: services
flush(), the route commits once, and database.get_db rolls back on any
exception. Rows that are read-then-written concurrently (products,
coupons, orders) are read with SELECT ... FOR UPDATE, and Order carries a
version counter so a lost update surfaces as StaleDataError (HTTP 409)
on back ends without row locks.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, func, inspect, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import settings
from db_models import (
    Address, CartItem, Order, OrderItem, OrderStatusHistory, Product, User, utcnow,
)
from domain.constants import ORDER_NUMBER_PREFIX
from domain.enums import (
    ADMIN_ROLES, CANCELLABLE_STATUSES, OrderStatus, PaymentMethod, PaymentStatus,
)
from domain.errors import (
    InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError,
)
from domain.responses import iso, money
from services import coupon_service, user_service
from services.coupon_service import quantize

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase

ORDER_SORT_FIELDS = {
    "createdAt": Order.created_at,
    "total": Order.total,
    "status": Order.status,
    "orderNumber": Order.order_number,
}


# ════════════════════════════════════════════════════════════════════
# Pure helpers
# ════════════════════════════════════════════════════════════════════


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_order_number() -> str:
    """NSH-<base36 epoch millis>-<4 random base36 chars>."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{ORDER_NUMBER_PREFIX}-{stamp}-{suffix}"


def compute_totals(
    subtotal: Decimal,
    *,
    discount: Decimal = Decimal("0"),
    tax_rate: Decimal | None = None,
    free_shipping_threshold: Decimal | None = None,
    shipping_fee: Decimal | None = None,
) -> dict[str, Decimal]:
    """
    Price an order from its subtotal.

    tax = subtotal * tax_rate; shipping is free at or above the threshold;
    total = subtotal + tax + shipping - discount. Amounts are rounded
    half-up to cents.
    """
    tax_rate = settings.tax_rate if tax_rate is None else tax_rate
    threshold = settings.free_shipping_threshold if free_shipping_threshold is None else free_shipping_threshold
    fee = settings.default_shipping_fee if shipping_fee is None else shipping_fee

    subtotal = quantize(subtotal)
    tax = quantize(subtotal * Decimal(tax_rate))
    shipping = Decimal("0.00") if subtotal >= Decimal(threshold) else quantize(Decimal(fee))
    discount = quantize(discount)
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping_cost": shipping,
        "discount": discount,
        "total": subtotal + tax + shipping - discount,
    }


def _merge_lines(items: list[dict]) -> dict[str, int]:
    """Collapse repeated product lines, preserving first-seen order."""
    merged: dict[str, int] = {}
    for line in items:
        merged[line["product_id"]] = merged.get(line["product_id"], 0) + int(line["quantity"])
    return merged


def lock_order(lines: dict[str, int]) -> list[str]:
    """Product ids in the order their rows are locked at checkout."""
    return sorted(lines)


# ════════════════════════════════════════════════════════════════════
# Serialization
# ════════════════════════════════════════════════════════════════════


def serialize_order(order: Order) -> dict:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "userId": order.user_id,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentMethod": order.payment_method,
        "paymentDetails": order.payment_details,
        "subtotal": money(order.subtotal),
        "tax": money(order.tax),
        "shippingCost": money(order.shipping_cost),
        "discount": money(order.discount),
        "total": money(order.total),
        "couponCode": order.coupon_code,
        "customerNote": order.customer_note,
        "trackingNumber": order.tracking_number,
        "shippingMethod": order.shipping_method,
        "idempotencyKey": order.idempotency_key,
        "clientConfirmedDelivery": order.client_confirmed_delivery,
        "adminConfirmedDelivery": order.admin_confirmed_delivery,
        "createdAt": iso(order.created_at),
        "updatedAt": iso(order.updated_at),
        "paidAt": iso(order.paid_at),
        "shippedAt": iso(order.shipped_at),
        "deliveredAt": iso(order.delivered_at),
        "cancelledAt": iso(order.cancelled_at),
        "address": user_service.serialize_address(order.address) if order.address else None,
        "items": [
            {
                "id": i.id,
                "productId": i.product_id,
                "productName": i.product_name,
                "productImage": i.product_image,
                "price": money(i.price),
                "quantity": i.quantity,
                "subtotal": money(i.subtotal),
            }
            for i in order.items
        ],
        "statusHistory": [
            {"id": h.id, "status": h.status, "note": h.note, "createdBy": h.created_by, "createdAt": iso(h.created_at)}
            for h in sorted(order.status_history, key=lambda h: h.created_at or utcnow(), reverse=True)
        ],
    }
    if "user" not in inspect(order).unloaded and order.user is not None:
        data["user"] = {
            "id": order.user.id,
            "email": order.user.email,
            "firstName": order.user.first_name,
            "lastName": order.user.last_name,
            "phone": order.user.phone,
        }
    return data


def event_payload(order: Order) -> dict:
    """Body of the `order_updated` real-time event."""
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "updatedAt": iso(order.updated_at),
    }


# ════════════════════════════════════════════════════════════════════
# Reads
# ════════════════════════════════════════════════════════════════════


async def get_by_idempotency_key(db: AsyncSession, key: str) -> Order | None:
    res = await db.execute(
        select(Order).where(Order.idempotency_key == key).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_order(db: AsyncSession, order_id: str, *, for_update: bool = False, with_user: bool = False) -> Order:
    q = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    if with_user:
        q = q.options(selectinload(Order.user))
    if for_update:
        q = q.with_for_update()
    order = (await db.execute(q)).scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def get_order_for_viewer(db: AsyncSession, *, order_id: str, viewer: User) -> Order:
    order = await get_order(db, order_id, with_user=True)
    if order.user_id != viewer.id and viewer.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not authorized to view this order")
    return order


async def list_my_orders(
    db: AsyncSession, *, user_id: str, limit: int, offset: int, status: str | None = None
) -> tuple[list[Order], int]:
    filters = [Order.user_id == user_id]
    if status:
        filters.append(Order.status == status)
    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(Order).where(*filters).order_by(Order.created_at.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def list_orders(
    db: AsyncSession,
    *,
    limit: int,
    offset: int,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[Order], int]:
    filters = []
    if status:
        filters.append(Order.status == status)
    if payment_status:
        filters.append(Order.payment_status == payment_status)
    if search:
        like = f"%{search}%"
        matching_users = select(User.id).where(or_(User.email.ilike(like), User.first_name.ilike(like)))
        filters.append(or_(Order.order_number.ilike(like), Order.user_id.in_(matching_users)))
    if start_date:
        filters.append(Order.created_at >= start_date)
    if end_date:
        filters.append(Order.created_at <= end_date)

    column = ORDER_SORT_FIELDS.get(sort_by, Order.created_at)
    order_by = column.asc() if sort_order == "asc" else column.desc()

    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(Order)
        .options(selectinload(Order.user))
        .where(*filters)
        .order_by(order_by)
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all(), total


async def order_stats(db: AsyncSession) -> dict:
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today.replace(day=1)

    async def _count(*where) -> int:
        return (await db.execute(select(func.count(Order.id)).where(*where))).scalar_one()

    async def _revenue(since: datetime) -> float:
        total = (
            await db.execute(
                select(func.coalesce(func.sum(Order.total), 0)).where(
                    Order.created_at >= since, Order.payment_status == PaymentStatus.PAID.value
                )
            )
        ).scalar_one()
        return money(total)

    return {
        "totalOrders": await _count(),
        "pendingOrders": await _count(Order.status == OrderStatus.PENDING.value),
        "completedOrders": await _count(Order.status == OrderStatus.DELIVERED.value),
        "todayOrders": await _count(Order.created_at >= today),
        "todayRevenue": await _revenue(today),
        "monthlyRevenue": await _revenue(month_start),
    }


# ════════════════════════════════════════════════════════════════════
# Checkout
# ════════════════════════════════════════════════════════════════════


async def _lock_product(db: AsyncSession, product_id: str) -> Product | None:
    res = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _resolve_address(db: AsyncSession, *, user_id: str, shipping_address: dict) -> Address:
    if shipping_address.get("id"):
        return await user_service.get_address(db, user_id=user_id, address_id=shipping_address["id"])
    fields = {k: v for k, v in shipping_address.items() if k != "id"}
    missing = [k for k in ("first_name", "last_name", "address_line1", "city") if not fields.get(k)]
    if missing:
        raise ValidationError(f"Shipping address is missing: {', '.join(missing)}", field="shippingAddress")
    fields.pop("is_default", None)
    return await user_service.add_address(db, user_id=user_id, **fields)


async def create_order(
    db: AsyncSession,
    *,
    user_id: str,
    items: list[dict],
    shipping_address: dict,
    payment_method: str,
    payment_details: dict | None = None,
    idempotency_key: str | None = None,
    coupon_code: str | None = None,
    customer_note: str | None = None,
) -> tuple[Order, bool]:
    """
    Place an order. Returns (order, created).

    A repeated idempotency key returns the original order with
    created=False and touches nothing else.
    """
    if idempotency_key:
        existing = await get_by_idempotency_key(db, idempotency_key)
        if existing:
            logger.info(f"Idempotent replay, returning order {existing.order_number}")
            return existing, False

    if not items:
        raise ValidationError("Order must contain at least one item", field="items")
    if payment_method not in {m.value for m in PaymentMethod}:
        raise ValidationError(f"Unknown payment method '{payment_method}'", field="paymentMethod")
    if payment_method == PaymentMethod.MOBILE_MONEY.value:
        details = payment_details or {}
        if not details.get("phoneNumber") or not details.get("network"):
            raise ValidationError("Mobile Money requires phone number and network")
        logger.info(f"Mobile money order on {details['network']} (payment pending confirmation)")

    # Lock and validate every product before touching stock. Rows are locked
    # in id order so concurrent checkouts cannot deadlock; lines keep the
    # client's order.
    lines = _merge_lines(items)
    if any(quantity < 1 for quantity in lines.values()):
        raise ValidationError("Quantity must be at least 1", field="items")
    rows: dict[str, Product | None] = {}
    for product_id in lock_order(lines):
        rows[product_id] = await _lock_product(db, product_id)

    locked: list[tuple[Product, int]] = []
    subtotal = Decimal("0")
    for product_id, quantity in lines.items():
        product = rows[product_id]
        if not product:
            raise NotFoundError("Product", product_id)
        if not product.is_active:
            raise InvalidStateError(f"Product is not available: {product.name}")
        if not product.in_stock or product.quantity < quantity:
            raise InvalidStateError(f"Insufficient stock for: {product.name}")
        locked.append((product, quantity))
        subtotal += Decimal(product.price) * quantity

    discount = Decimal("0")
    applied_code = None
    if coupon_code:
        coupon, discount = await coupon_service.redeem(db, code=coupon_code, subtotal=quantize(subtotal))
        applied_code = coupon.code

    totals = compute_totals(subtotal, discount=discount)
    address = await _resolve_address(db, user_id=user_id, shipping_address=shipping_address)

    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        address=address,
        payment_method=payment_method,
        payment_details=payment_details,
        idempotency_key=idempotency_key,
        coupon_code=applied_code,
        customer_note=customer_note,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        items=[
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_image=product.primary_image,
                price=product.price,
                quantity=quantity,
                subtotal=quantize(Decimal(product.price) * quantity),
            )
            for product, quantity in locked
        ],
        status_history=[
            OrderStatusHistory(status=OrderStatus.PENDING.value, note="Order created", created_by=user_id)
        ],
        **totals,
    )
    db.add(order)

    for product, quantity in locked:
        product.quantity -= quantity
        if product.quantity <= 0:
            product.in_stock = False

    try:
        await db.flush()
    except IntegrityError:
        # Lost a race on the idempotency key: discard our attempt, return the winner
        await db.rollback()
        if idempotency_key:
            existing = await get_by_idempotency_key(db, idempotency_key)
            if existing:
                return existing, False
        raise

    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))

    logger.info(f"Order {order.order_number} created for user {user_id} (total={totals['total']})")
    return order, True


# ════════════════════════════════════════════════════════════════════
# Transitions
# ════════════════════════════════════════════════════════════════════


def _append_history(order: Order, status: str, note: str | None, actor_id: str | None) -> None:
    order.status_history.append(OrderStatusHistory(status=status, note=note, created_by=actor_id))


async def _restore_stock(db: AsyncSession, order: Order) -> None:
    """Put cancelled quantities back on the shelf, at most once per order."""
    if order.stock_restored:
        return
    for item in order.items:
        if not item.product_id:
            continue
        product = await _lock_product(db, item.product_id)
        if product:
            product.quantity += item.quantity
            product.in_stock = True
    order.stock_restored = True


async def cancel_order(db: AsyncSession, *, order_id: str, user_id: str, reason: str | None = None) -> Order:
    order = await get_order(db, order_id, for_update=True)
    if order.user_id != user_id:
        raise PermissionDeniedError("Not authorized to cancel this order")
    if order.status not in CANCELLABLE_STATUSES:
        raise InvalidStateError("Order cannot be cancelled at this stage")

    order.status = OrderStatus.CANCELLED.value
    order.cancelled_at = utcnow()
    _append_history(order, OrderStatus.CANCELLED.value, reason or "Cancelled by customer", user_id)
    await _restore_stock(db, order)
    await db.flush()
    logger.info(f"Order {order.order_number} cancelled by customer")
    return order


async def update_status(db: AsyncSession, *, order_id: str, status: str, note: str | None, actor_id: str) -> Order:
    """Admin override: any status is accepted; timestamps follow the target."""
    if status not in {s.value for s in OrderStatus}:
        raise ValidationError("Invalid status")
    order = await get_order(db, order_id, for_update=True)

    now = utcnow()
    order.status = status
    if status == OrderStatus.SHIPPED.value:
        order.shipped_at = now
    elif status == OrderStatus.DELIVERED.value:
        order.delivered_at = now
    elif status == OrderStatus.CANCELLED.value:
        order.cancelled_at = now
        await _restore_stock(db, order)
    _append_history(order, status, note, actor_id)
    await db.flush()
    logger.info(f"Order {order.order_number} status -> {status}")
    return order


async def update_payment_status(db: AsyncSession, *, order_id: str, payment_status: str) -> Order:
    if payment_status not in {s.value for s in PaymentStatus}:
        raise ValidationError("Invalid payment status")
    order = await get_order(db, order_id, for_update=True)
    order.payment_status = payment_status
    if payment_status == PaymentStatus.PAID.value:
        order.paid_at = utcnow()
    await db.flush()
    return order


async def add_tracking(
    db: AsyncSession, *, order_id: str, tracking_number: str, shipping_method: str | None, actor_id: str
) -> Order:
    order = await get_order(db, order_id, for_update=True)
    order.tracking_number = tracking_number
    order.shipping_method = shipping_method
    _append_history(order, OrderStatus.SHIPPED.value, f"Tracking: {tracking_number}", actor_id)
    await db.flush()
    return order


async def confirm_delivery(db: AsyncSession, *, order_id: str, user: User) -> Order:
    """
    Record one side's delivery confirmation. Once both the admin and the
    owning customer confirmed, the order becomes DELIVERED and an unpaid
    COD order is settled.
    """
    order = await get_order(db, order_id, for_update=True)
    is_admin = user.role in ADMIN_ROLES
    if not is_admin and order.user_id != user.id:
        raise PermissionDeniedError("Not authorized to confirm this order")
    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value):
        raise InvalidStateError(f"Cannot confirm delivery of a {order.status.lower()} order")

    if is_admin:
        order.admin_confirmed_delivery = True
    else:
        order.client_confirmed_delivery = True

    if order.admin_confirmed_delivery and order.client_confirmed_delivery:
        now = utcnow()
        order.status = OrderStatus.DELIVERED.value
        order.delivered_at = now
        if order.payment_method == PaymentMethod.COD.value and order.payment_status != PaymentStatus.PAID.value:
            order.payment_status = PaymentStatus.PAID.value
            order.paid_at = now

    _append_history(order, order.status, f"Delivery confirmed by {'Admin' if is_admin else 'Client'}", user.id)
    await db.flush()
    return order


async def delete_order(db: AsyncSession, *, order_id: str) -> None:
    order = await get_order(db, order_id)
    await db.delete(order)
    await db.flush()
    logger.info(f"Order {order.order_number} deleted")


async def has_delivered_purchase(db: AsyncSession, *, user_id: str, product_id: str) -> bool:
    """True when the user has a DELIVERED order containing the product."""
    res = await db.execute(
        select(OrderItem.id)
        .join(Order, OrderItem.order_id == Order.id)
        .where(
            Order.user_id == user_id,
            Order.status == OrderStatus.DELIVERED.value,
            OrderItem.product_id == product_id,
        )
        .limit(1)
    )
    return res.first() is not None


def recent_window(days: int) -> datetime:
    return utcnow() - timedelta(days=days)
