"""
Notification service — persisted notifications, per-user read state and
real-time delivery.

Targeting rules (see db_models.Notification):
    user_id set                 → room user_<id>
    is_global                   → every connected socket
    product_id == "ADMIN_ONLY"  → admin_notifications room
"""
import logging
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Notification, User, UserNotification, utcnow
from domain.constants import ADMIN_ONLY_TARGET, EVENT_NEW_NOTIFICATION
from domain.enums import ADMIN_ROLES
from domain.errors import NotFoundError
from domain.responses import iso

logger = logging.getLogger(__name__)


def serialize(n: Notification, *, is_read: bool | None = None, read_at: datetime | None = None) -> dict:
    data = {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "isGlobal": n.is_global,
        "userId": n.user_id,
        "orderId": n.order_id,
        "productId": n.product_id,
        "link": n.link,
        "isActive": n.is_active,
        "scheduledAt": iso(n.scheduled_at),
        "sentAt": iso(n.sent_at),
        "createdAt": iso(n.created_at),
    }
    if is_read is not None:
        data["isRead"] = is_read
        data["readAt"] = iso(read_at)
    return data


def event_payload(n: Notification) -> dict:
    """Compact payload pushed with `new_notification`."""
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "orderId": n.order_id,
        "link": n.link,
        "createdAt": iso(n.created_at),
    }


async def push(realtime, n: Notification) -> int:
    """Emit `new_notification` to whichever audience the row targets."""
    if realtime is None or not n.is_active:
        return 0
    payload = event_payload(n)
    if n.product_id == ADMIN_ONLY_TARGET:
        return await realtime.emit_to_admins(EVENT_NEW_NOTIFICATION, payload)
    if n.is_global:
        return await realtime.emit(EVENT_NEW_NOTIFICATION, payload)
    if n.user_id:
        return await realtime.emit_to_user(n.user_id, EVENT_NEW_NOTIFICATION, payload)
    return 0


# ── Creation ────────────────────────────────────────────────────────

async def create_notification(
    db: AsyncSession,
    *,
    title: str,
    message: str,
    type: str = "INFO",
    is_global: bool = False,
    user_id: str | None = None,
    order_id: str | None = None,
    product_id: str | None = None,
    link: str | None = None,
    scheduled_at: datetime | None = None,
    created_by: str | None = None,
) -> Notification:
    """
    Persist a notification. Unscheduled rows are stamped sent immediately;
    the caller pushes them after commit. Scheduled rows wait for the
    scheduler.
    """
    notification = Notification(
        title=title,
        message=message,
        type=type,
        is_global=is_global,
        user_id=user_id,
        order_id=order_id,
        product_id=product_id,
        link=link,
        scheduled_at=scheduled_at,
        sent_at=None if scheduled_at else utcnow(),
        created_by=created_by,
    )
    db.add(notification)
    await db.flush()
    return notification


def notify_admins(db: AsyncSession, **kwargs):
    """Shortcut for admin-group notifications (contact form, chat)."""
    return create_notification(db, product_id=ADMIN_ONLY_TARGET, **kwargs)


# ── User Feed ───────────────────────────────────────────────────────

def _visibility_clause(user: User):
    now = utcnow()
    if user.role in ADMIN_ROLES:
        audience = or_(
            Notification.user_id == user.id,
            Notification.is_global == True,  # noqa: E712
            Notification.product_id == ADMIN_ONLY_TARGET,
        )
    else:
        audience = or_(
            Notification.user_id == user.id,
            and_(
                Notification.is_global == True,  # noqa: E712
                Notification.user_id.is_(None),
                or_(Notification.product_id.is_(None), Notification.product_id != ADMIN_ONLY_TARGET),
            ),
        )
    due = or_(Notification.scheduled_at.is_(None), Notification.scheduled_at <= now)
    return and_(Notification.is_active == True, audience, due)  # noqa: E712


async def list_for_user(
    db: AsyncSession,
    *,
    user: User,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
) -> tuple[list[dict], int]:
    where = _visibility_clause(user)
    read_join = and_(
        UserNotification.notification_id == Notification.id,
        UserNotification.user_id == user.id,
    )
    base = select(Notification, UserNotification).outerjoin(UserNotification, read_join).where(where)
    count_q = select(func.count(Notification.id)).outerjoin(UserNotification, read_join).where(where)
    if unread_only:
        unread = or_(UserNotification.id.is_(None), UserNotification.is_read == False)  # noqa: E712
        base = base.where(unread)
        count_q = count_q.where(unread)

    total = (await db.execute(count_q)).scalar_one()
    res = await db.execute(base.order_by(Notification.created_at.desc()).limit(limit).offset(offset))
    items = [
        serialize(n, is_read=bool(un and un.is_read), read_at=un.read_at if un else None)
        for n, un in res.all()
    ]
    return items, total


async def unread_count(db: AsyncSession, *, user: User) -> int:
    visible = (await db.execute(select(Notification.id).where(_visibility_clause(user)))).scalars().all()
    if not visible:
        return 0
    read = (
        await db.execute(
            select(func.count(UserNotification.id)).where(
                UserNotification.user_id == user.id,
                UserNotification.is_read == True,  # noqa: E712
                UserNotification.notification_id.in_(visible),
            )
        )
    ).scalar_one()
    return len(visible) - read


async def _upsert_read(db: AsyncSession, *, user_id: str, notification_id: str, now: datetime) -> None:
    res = await db.execute(
        select(UserNotification).where(
            UserNotification.user_id == user_id,
            UserNotification.notification_id == notification_id,
        )
    )
    marker = res.scalar_one_or_none()
    if marker:
        marker.is_read = True
        marker.read_at = now
    else:
        db.add(UserNotification(user_id=user_id, notification_id=notification_id, is_read=True, read_at=now))


async def mark_read(db: AsyncSession, *, user: User, notification_id: str) -> None:
    exists = await db.get(Notification, notification_id)
    if not exists:
        raise NotFoundError("Notification", notification_id)
    await _upsert_read(db, user_id=user.id, notification_id=notification_id, now=utcnow())
    await db.flush()


async def mark_all_read(db: AsyncSession, *, user: User) -> int:
    visible = (await db.execute(select(Notification.id).where(_visibility_clause(user)))).scalars().all()
    now = utcnow()
    for notification_id in visible:
        await _upsert_read(db, user_id=user.id, notification_id=notification_id, now=now)
    await db.flush()
    return len(visible)


# ── Admin ───────────────────────────────────────────────────────────

async def list_all(
    db: AsyncSession,
    *,
    limit: int,
    offset: int,
    type: str | None = None,
    is_global: bool | None = None,
) -> tuple[list[Notification], int]:
    q = select(Notification)
    c = select(func.count(Notification.id))
    if type:
        q = q.where(Notification.type == type)
        c = c.where(Notification.type == type)
    if is_global is not None:
        q = q.where(Notification.is_global == is_global)
        c = c.where(Notification.is_global == is_global)
    total = (await db.execute(c)).scalar_one()
    res = await db.execute(q.order_by(Notification.created_at.desc()).limit(limit).offset(offset))
    return res.scalars().all(), total


async def get_notification(db: AsyncSession, notification_id: str) -> Notification:
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    return notification


async def update_notification(db: AsyncSession, *, notification_id: str, **fields) -> Notification:
    notification = await get_notification(db, notification_id)
    for name, value in fields.items():
        if value is not None:
            setattr(notification, name, value)
    # Rescheduling into the future re-arms the scheduler
    scheduled_at = fields.get("scheduled_at")
    if scheduled_at is not None and scheduled_at > utcnow():
        notification.sent_at = None
    await db.flush()
    return notification


async def delete_notification(db: AsyncSession, *, notification_id: str) -> None:
    notification = await get_notification(db, notification_id)
    await db.delete(notification)
    await db.flush()


async def mark_sent_now(db: AsyncSession, *, notification_id: str) -> Notification:
    notification = await get_notification(db, notification_id)
    notification.sent_at = utcnow()
    await db.flush()
    return notification
