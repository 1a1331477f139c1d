"""
Dashboard service — admin analytics aggregates.

All figures are computed on demand with SQL aggregates; revenue counts
PAID orders only.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Category, ContactMessage, Order, OrderItem, Product, Review, User, utcnow
from domain.enums import ContactStatus, OrderStatus, PaymentStatus, Role
from domain.responses import iso, money

logger = logging.getLogger(__name__)

REVENUE_PERIODS = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
    "12months": 365,
}


def _month_bounds(now: datetime) -> tuple[datetime, datetime, datetime]:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    this_month = today.replace(day=1)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    return today, this_month, last_month


async def _paid_revenue(db: AsyncSession, *where) -> float:
    total = (
        await db.execute(
            select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.payment_status == PaymentStatus.PAID.value, *where
            )
        )
    ).scalar_one()
    return money(total)


async def _count(db: AsyncSession, column, *where) -> int:
    return (await db.execute(select(func.count(column)).where(*where))).scalar_one()


def growth_percent(current: float, previous: float) -> float:
    """Month-over-month growth; 100 when there is no previous revenue."""
    if previous > 0:
        return round((current - previous) / previous * 100, 2)
    return 100.0


async def stats(db: AsyncSession) -> dict:
    today, this_month, last_month = _month_bounds(utcnow())

    this_month_revenue = await _paid_revenue(db, Order.created_at >= this_month)
    last_month_revenue = await _paid_revenue(db, Order.created_at >= last_month, Order.created_at < this_month)

    return {
        "products": {
            "total": await _count(db, Product.id),
            "active": await _count(db, Product.id, Product.is_active == True, Product.in_stock == True),  # noqa: E712
        },
        "categories": await _count(db, Category.id, Category.is_active == True),  # noqa: E712
        "users": await _count(db, User.id, User.role == Role.CUSTOMER.value),
        "orders": {
            "total": await _count(db, Order.id),
            "pending": await _count(db, Order.id, Order.status == OrderStatus.PENDING.value),
            "today": await _count(db, Order.id, Order.created_at >= today),
        },
        "revenue": {
            "total": await _paid_revenue(db),
            "thisMonth": this_month_revenue,
            "lastMonth": last_month_revenue,
            "growth": growth_percent(this_month_revenue, last_month_revenue),
        },
        "messages": {
            "pending": await _count(db, ContactMessage.id, ContactMessage.status == ContactStatus.NEW.value),
        },
    }


async def revenue_chart(db: AsyncSession, *, period: str = "7days") -> list[dict]:
    """Paid revenue grouped by calendar day (UTC) over the period."""
    days = REVENUE_PERIODS.get(period, 7)
    since = utcnow() - timedelta(days=days)
    res = await db.execute(
        select(Order.total, Order.created_at)
        .where(Order.created_at >= since, Order.payment_status == PaymentStatus.PAID.value)
        .order_by(Order.created_at.asc())
    )
    by_date: OrderedDict[str, float] = OrderedDict()
    for total, created_at in res.all():
        day = created_at.date().isoformat()
        by_date[day] = by_date.get(day, 0.0) + money(total)
    return [{"date": day, "revenue": round(revenue, 2)} for day, revenue in by_date.items()]


async def order_breakdown(db: AsyncSession) -> dict:
    by_status = await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
    by_payment = await db.execute(select(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status))
    return {
        "byStatus": {s: c for s, c in by_status.all()},
        "byPayment": {p: c for p, c in by_payment.all()},
    }


async def top_products(db: AsyncSession, *, limit: int = 10) -> list[dict]:
    sold = func.sum(OrderItem.quantity).label("sold")
    res = await db.execute(
        select(OrderItem.product_id, sold, func.count(OrderItem.id))
        .where(OrderItem.product_id.is_not(None))
        .group_by(OrderItem.product_id)
        .order_by(sold.desc())
        .limit(limit)
    )
    rows = res.all()
    products = {
        p.id: p
        for p in (await db.execute(select(Product).where(Product.id.in_([r[0] for r in rows])))).scalars().all()
    }
    result = []
    for product_id, sold_count, order_count in rows:
        product = products.get(product_id)
        result.append({
            "id": product_id,
            "name": product.name if product else "Deleted Product",
            "image": product.primary_image if product else None,
            "soldCount": int(sold_count or 0),
            "orderCount": order_count,
            "price": money(product.price) if product else 0,
        })
    return result


async def low_stock(db: AsyncSession, *, limit: int = 10) -> list[dict]:
    res = await db.execute(
        select(Product)
        .where(
            Product.is_active == True,  # noqa: E712
            Product.track_inventory == True,  # noqa: E712
            Product.quantity <= Product.low_stock_threshold,
        )
        .order_by(Product.quantity.asc())
        .limit(limit)
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "slug": p.slug,
            "image": p.primary_image,
            "category": p.category.name if p.category else None,
            "quantity": p.quantity,
            "lowStockThreshold": p.low_stock_threshold,
            "price": money(p.price),
        }
        for p in res.scalars().all()
    ]


async def customer_stats(db: AsyncSession) -> dict:
    now = utcnow()
    _, this_month, _ = _month_bounds(now)
    customer = User.role == Role.CUSTOMER.value

    spent = func.sum(Order.total).label("spent")
    top = (
        await db.execute(
            select(Order.user_id, spent, func.count(Order.id))
            .where(Order.payment_status == PaymentStatus.PAID.value)
            .group_by(Order.user_id)
            .order_by(spent.desc())
            .limit(5)
        )
    ).all()
    users = {
        u.id: u
        for u in (await db.execute(select(User).where(User.id.in_([t[0] for t in top])))).scalars().all()
    }

    return {
        "stats": {
            "total": await _count(db, User.id, customer),
            "newThisMonth": await _count(db, User.id, customer, User.created_at >= this_month),
            "activeLastMonth": await _count(db, User.id, customer, User.last_login_at >= now - timedelta(days=30)),
        },
        "topCustomers": [
            {
                "id": user_id,
                "name": users[user_id].full_name if user_id in users else "Unknown",
                "email": users[user_id].email if user_id in users else None,
                "totalSpent": money(total),
                "orderCount": count,
            }
            for user_id, total, count in top
        ],
    }


async def recent_orders(db: AsyncSession, *, limit: int = 10) -> list[dict]:
    res = await db.execute(
        select(Order).options(selectinload(Order.user)).order_by(Order.created_at.desc()).limit(limit)
    )
    return [
        {
            "id": o.id,
            "orderNumber": o.order_number,
            "customer": o.user.full_name if o.user else None,
            "email": o.user.email if o.user else None,
            "total": money(o.total),
            "status": o.status,
            "paymentStatus": o.payment_status,
            "itemCount": len(o.items),
            "createdAt": iso(o.created_at),
        }
        for o in res.scalars().all()
    ]


async def recent_activity(db: AsyncSession, *, limit: int = 20) -> list[dict]:
    """Latest orders, reviews, messages and sign-ups merged newest first."""
    orders = (
        await db.execute(select(Order).options(selectinload(Order.user)).order_by(Order.created_at.desc()).limit(5))
    ).scalars().all()
    reviews = (
        await db.execute(select(Review).options(selectinload(Review.product)).order_by(Review.created_at.desc()).limit(5))
    ).scalars().all()
    messages = (
        await db.execute(select(ContactMessage).order_by(ContactMessage.created_at.desc()).limit(5))
    ).scalars().all()
    customers = (
        await db.execute(
            select(User).where(User.role == Role.CUSTOMER.value).order_by(User.created_at.desc()).limit(5)
        )
    ).scalars().all()

    activities = [
        *(
            {"type": "order", "id": o.id, "timestamp": o.created_at,
             "message": f"New order {o.order_number} by {o.user.full_name if o.user else 'unknown'}"}
            for o in orders
        ),
        *(
            {"type": "review", "id": r.id, "timestamp": r.created_at,
             "message": f'{r.user.first_name} rated "{r.product.name if r.product else "a product"}" {r.rating} stars'}
            for r in reviews
        ),
        *(
            {"type": "message", "id": m.id, "timestamp": m.created_at,
             "message": f"New message from {m.name}: {m.subject}"}
            for m in messages
        ),
        *(
            {"type": "user", "id": u.id, "timestamp": u.created_at,
             "message": f"New customer: {u.full_name}"}
            for u in customers
        ),
    ]
    activities.sort(key=lambda a: a["timestamp"] or datetime.min, reverse=True)
    return [{**a, "timestamp": iso(a["timestamp"])} for a in activities[:limit]]
