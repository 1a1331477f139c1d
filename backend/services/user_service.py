"""
User service — saved addresses and admin account management.
"""
import logging
from datetime import timedelta

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Address, CartItem, Notification, Order, Review, User, UserNotification, utcnow
from domain.enums import ADMIN_ROLES, Role
from domain.errors import InvalidStateError, NotFoundError, ValidationError
from domain.responses import iso, money
from services.auth_service import hash_password, serialize_user

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    "type", "first_name", "last_name", "address_line1", "address_line2",
    "city", "state", "postal_code", "country", "phone",
)

USER_SORT_FIELDS = {
    "createdAt": User.created_at,
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "lastLoginAt": User.last_login_at,
}


def serialize_address(a: Address) -> dict:
    return {
        "id": a.id,
        "type": a.type,
        "firstName": a.first_name,
        "lastName": a.last_name,
        "addressLine1": a.address_line1,
        "addressLine2": a.address_line2,
        "city": a.city,
        "state": a.state,
        "postalCode": a.postal_code,
        "country": a.country,
        "phone": a.phone,
        "isDefault": a.is_default,
        "createdAt": iso(a.created_at),
    }


# ── Addresses ───────────────────────────────────────────────────────

async def list_addresses(db: AsyncSession, *, user_id: str) -> list[Address]:
    res = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
    )
    return res.scalars().all()


async def _clear_default(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        update(Address)
        .where(Address.user_id == user_id, Address.is_default == True)  # noqa: E712
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


async def get_address(db: AsyncSession, *, user_id: str, address_id: str) -> Address:
    res = await db.execute(select(Address).where(Address.id == address_id, Address.user_id == user_id))
    address = res.scalar_one_or_none()
    if not address:
        raise NotFoundError("Address", address_id)
    return address


async def add_address(db: AsyncSession, *, user_id: str, is_default: bool = False, **fields) -> Address:
    """Create an address; a new default demotes the previous one."""
    if is_default:
        await _clear_default(db, user_id)
    address = Address(user_id=user_id, is_default=is_default, **{k: v for k, v in fields.items() if k in ADDRESS_FIELDS})
    db.add(address)
    await db.flush()
    return address


async def update_address(db: AsyncSession, *, user_id: str, address_id: str, is_default: bool | None = None, **fields) -> Address:
    address = await get_address(db, user_id=user_id, address_id=address_id)
    if is_default:
        await _clear_default(db, user_id)
    for name, value in fields.items():
        if name in ADDRESS_FIELDS and value is not None:
            setattr(address, name, value)
    if is_default is not None:
        address.is_default = is_default
    await db.flush()
    return address


async def delete_address(db: AsyncSession, *, user_id: str, address_id: str) -> None:
    address = await get_address(db, user_id=user_id, address_id=address_id)
    await db.delete(address)
    await db.flush()


# ── Admin: Users ────────────────────────────────────────────────────

async def list_users(
    db: AsyncSession,
    *,
    limit: int,
    offset: int,
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[dict], int]:
    filters = []
    if search:
        like = f"%{search}%"
        filters.append(or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like)))
    if role:
        filters.append(User.role == role)
    if status is not None:
        filters.append(User.is_active == (status == "active"))

    order_col = USER_SORT_FIELDS.get(sort_by, User.created_at)
    order_by = order_col.asc() if sort_order == "asc" else order_col.desc()

    order_count = (
        select(func.count(Order.id)).where(Order.user_id == User.id).correlate(User).scalar_subquery()
    )
    res = await db.execute(
        select(User, order_count).where(*filters).order_by(order_by).limit(limit).offset(offset)
    )
    total = (await db.execute(select(func.count(User.id)).where(*filters))).scalar_one()
    users = [{**serialize_user(u), "orderCount": count} for u, count in res.all()]
    return users, total


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


async def get_user_detail(db: AsyncSession, user_id: str) -> dict:
    user = await get_user(db, user_id)
    addresses = await list_addresses(db, user_id=user_id)
    orders = (
        await db.execute(
            select(Order.id, Order.order_number, Order.total, Order.status, Order.created_at)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(10)
        )
    ).all()
    order_total = (await db.execute(select(func.count(Order.id)).where(Order.user_id == user_id))).scalar_one()
    review_total = (await db.execute(select(func.count(Review.id)).where(Review.user_id == user_id))).scalar_one()
    return {
        **serialize_user(user),
        "addresses": [serialize_address(a) for a in addresses],
        "orders": [
            {"id": o.id, "orderNumber": o.order_number, "total": money(o.total), "status": o.status, "createdAt": iso(o.created_at)}
            for o in orders
        ],
        "counts": {"orders": order_total, "reviews": review_total},
    }


async def update_user(
    db: AsyncSession,
    *,
    user_id: str,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    email_verified: bool | None = None,
    password: str | None = None,
) -> User:
    user = await get_user(db, user_id)
    if first_name:
        user.first_name = first_name
    if last_name:
        user.last_name = last_name
    if phone is not None:
        user.phone = phone
    if role:
        if role not in {r.value for r in Role}:
            raise ValidationError(f"Unknown role '{role}'", field="role")
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    if email_verified is not None:
        user.email_verified = email_verified
    if password:
        user.password = await hash_password(password)
    await db.flush()
    return user


async def toggle_user_status(db: AsyncSession, *, user_id: str) -> User:
    user = await get_user(db, user_id)
    user.is_active = not user.is_active
    await db.flush()
    logger.info(f"User {user.email} active={user.is_active}")
    return user


async def delete_user(db: AsyncSession, *, user_id: str, acting_user_id: str) -> None:
    if user_id == acting_user_id:
        raise ValidationError("You cannot delete your own account")
    await get_user(db, user_id)
    order_count = (await db.execute(select(func.count(Order.id)).where(Order.user_id == user_id))).scalar_one()
    if order_count:
        raise InvalidStateError("Cannot delete a user with orders. Deactivate the account instead.")

    # Bulk deletes keep dependent collections from being lazy-loaded
    for model in (Address, CartItem, Review, UserNotification, Notification):
        await db.execute(delete(model).where(model.user_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))
    await db.flush()
    logger.info(f"User {user_id} deleted")


async def user_stats(db: AsyncSession) -> dict:
    total = (await db.execute(select(func.count(User.id)))).scalar_one()
    active = (await db.execute(select(func.count(User.id)).where(User.is_active == True))).scalar_one()  # noqa: E712
    admins = (await db.execute(select(func.count(User.id)).where(User.role.in_(ADMIN_ROLES)))).scalar_one()
    recent = (
        await db.execute(select(func.count(User.id)).where(User.created_at >= utcnow() - timedelta(days=30)))
    ).scalar_one()
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "admins": admins,
        "customers": total - admins,
        "newThisMonth": recent,
    }
