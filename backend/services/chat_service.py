"""
Chat service — per-order conversation between the customer and staff.

Sending a message persists it, raises a notification for the other side
and, once committed, fans out three events:
    receive_message            → order_<id>
    new_message_notification   → user_<owner> or admin_notifications
    new_notification           → same audience as above
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import ChatMessage, Notification, Order, User
from domain.constants import EVENT_NEW_MESSAGE_NOTIFICATION, EVENT_RECEIVE_MESSAGE
from domain.enums import ADMIN_ROLES
from domain.errors import NotFoundError, PermissionDeniedError, ValidationError
from domain.responses import iso
from services import notification_service

logger = logging.getLogger(__name__)


def serialize_message(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "orderId": m.order_id,
        "senderId": m.sender_id,
        "content": m.content,
        "imageUrl": m.image_url,
        "location": m.location,
        "isAdmin": m.is_admin,
        "createdAt": iso(m.created_at),
        "sender": {
            "id": m.sender.id,
            "firstName": m.sender.first_name,
            "lastName": m.sender.last_name,
            "avatar": m.sender.avatar,
            "role": m.sender.role,
        } if m.sender else None,
    }


async def _order_for(db: AsyncSession, order_id: str, user: User, *, action: str) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    if order.user_id != user.id and user.role not in ADMIN_ROLES:
        raise PermissionDeniedError(f"Not authorized to {action} this chat")
    return order


async def can_join(db: AsyncSession, *, order_id: str, user_id: str, role: str | None) -> bool:
    """Socket room guard: only the owner or staff may join an order room."""
    if role in ADMIN_ROLES:
        return True
    owner = (await db.execute(select(Order.user_id).where(Order.id == order_id))).scalar_one_or_none()
    return owner is not None and owner == user_id


async def order_messages(db: AsyncSession, *, order_id: str, user: User) -> list[ChatMessage]:
    await _order_for(db, order_id, user, action="view")
    res = await db.execute(
        select(ChatMessage).where(ChatMessage.order_id == order_id).order_by(ChatMessage.created_at.asc())
    )
    return res.scalars().all()


async def send_message(
    db: AsyncSession,
    *,
    order_id: str,
    sender: User,
    content: str | None = None,
    image_url: str | None = None,
    location: dict | None = None,
) -> tuple[ChatMessage, Order, Notification]:
    if not (content and content.strip()) and not image_url and not location:
        raise ValidationError("Message must have content, an image or a location")

    order = await _order_for(db, order_id, sender, action="send messages in")
    is_admin = sender.role in ADMIN_ROLES

    message = ChatMessage(
        order_id=order.id,
        sender_id=sender.id,
        content=content,
        image_url=image_url,
        location=location,
        is_admin=is_admin,
        sender=sender,
    )
    db.add(message)
    await db.flush()

    preview = content or "Sent an image"
    if is_admin:
        notification = await notification_service.create_notification(
            db,
            title=f"Reply on Order #{order.order_number}",
            message=f"{sender.first_name}: {preview}",
            user_id=order.user_id,
            order_id=order.id,
            created_by=sender.id,
        )
    else:
        notification = await notification_service.notify_admins(
            db,
            title=f"New message on Order #{order.order_number}",
            message=f"{sender.first_name}: {preview}",
            order_id=order.id,
            created_by=sender.id,
        )
    return message, order, notification


async def broadcast(realtime, *, message: ChatMessage, order: Order, notification: Notification) -> None:
    """Push a committed chat message and its notification."""
    if realtime is None:
        return
    await realtime.emit_to_order(order.id, EVENT_RECEIVE_MESSAGE, serialize_message(message))
    summary = {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "senderName": message.sender.first_name if message.sender else None,
        "content": message.content or "Sent an image",
    }
    if message.is_admin:
        await realtime.emit_to_user(order.user_id, EVENT_NEW_MESSAGE_NOTIFICATION, summary)
    else:
        await realtime.emit_to_admins(EVENT_NEW_MESSAGE_NOTIFICATION, summary)
    await notification_service.push(realtime, notification)


async def list_chats(db: AsyncSession) -> list[dict]:
    """Orders that have at least one message, most recently active first."""
    latest = (
        select(ChatMessage.order_id, func.max(ChatMessage.created_at).label("last_at"))
        .group_by(ChatMessage.order_id)
        .subquery()
    )
    rows = (
        await db.execute(
            select(Order, latest.c.last_at)
            .join(latest, latest.c.order_id == Order.id)
            .options(selectinload(Order.user))
            .order_by(latest.c.last_at.desc())
        )
    ).all()

    chats = []
    for order, last_at in rows:
        last = (
            await db.execute(
                select(ChatMessage)
                .where(ChatMessage.order_id == order.id)
                .order_by(ChatMessage.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        chats.append({
            "id": order.id,
            "orderNumber": order.order_number,
            "customer": {
                "id": order.user.id,
                "firstName": order.user.first_name,
                "lastName": order.user.last_name,
                "email": order.user.email,
                "avatar": order.user.avatar,
            } if order.user else None,
            "lastMessage": serialize_message(last) if last else None,
            "updatedAt": iso(last_at or order.updated_at),
        })
    return chats
