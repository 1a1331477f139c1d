"""
Contact service — support inbox.
"""
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import ContactMessage, Notification, User, utcnow
from domain.constants import INQUIRY_PRIORITY
from domain.enums import ContactPriority, ContactStatus
from domain.errors import NotFoundError, ValidationError
from domain.responses import iso
from services import notification_service

logger = logging.getLogger(__name__)

CONTACT_SORT_FIELDS = {
    "createdAt": ContactMessage.created_at,
    "status": ContactMessage.status,
    "priority": ContactMessage.priority,
}


def priority_for(inquiry_type: str | None) -> str:
    return INQUIRY_PRIORITY.get((inquiry_type or "general").lower(), ContactPriority.NORMAL.value)


def serialize_message(m: ContactMessage, *, user: User | None = None) -> dict:
    data = {
        "id": m.id,
        "userId": m.user_id,
        "name": m.name,
        "email": m.email,
        "phone": m.phone,
        "subject": m.subject,
        "inquiryType": m.inquiry_type,
        "message": m.message,
        "status": m.status,
        "priority": m.priority,
        "assignedTo": m.assigned_to,
        "response": m.response,
        "respondedAt": iso(m.responded_at),
        "createdAt": iso(m.created_at),
        "updatedAt": iso(m.updated_at),
    }
    if user is not None:
        data["user"] = {
            "id": user.id,
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "phone": user.phone,
        }
    return data


async def create_message(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    subject: str,
    message: str,
    inquiry_type: str = "general",
    phone: str | None = None,
    user_id: str | None = None,
) -> tuple[ContactMessage, Notification]:
    """Store an inquiry and raise an admin notification for it."""
    contact = ContactMessage(
        user_id=user_id,
        name=name,
        email=email,
        phone=phone,
        subject=subject,
        inquiry_type=inquiry_type,
        message=message,
        priority=priority_for(inquiry_type),
    )
    db.add(contact)
    await db.flush()
    logger.info(f"New contact message from: {email}")

    preview = message if len(message) <= 50 else f"{message[:50]}..."
    notification = await notification_service.notify_admins(
        db,
        title=f"New Inquiry: {subject}",
        message=f"{name} ({email}): {preview}",
        link="/admin/messages",
        created_by=user_id,
    )
    return contact, notification


async def list_messages(
    db: AsyncSession,
    *,
    limit: int,
    offset: int,
    status: str | None = None,
    priority: str | None = None,
    inquiry_type: str | None = None,
    search: str | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[list[ContactMessage], int]:
    filters = []
    if status:
        filters.append(ContactMessage.status == status)
    if priority:
        filters.append(ContactMessage.priority == priority)
    if inquiry_type:
        filters.append(ContactMessage.inquiry_type == inquiry_type)
    if search:
        like = f"%{search}%"
        filters.append(
            or_(ContactMessage.name.ilike(like), ContactMessage.email.ilike(like), ContactMessage.subject.ilike(like))
        )

    column = CONTACT_SORT_FIELDS.get(sort_by, ContactMessage.created_at)
    order_by = column.asc() if sort_order == "asc" else column.desc()
    total = (await db.execute(select(func.count(ContactMessage.id)).where(*filters))).scalar_one()
    res = await db.execute(select(ContactMessage).where(*filters).order_by(order_by).limit(limit).offset(offset))
    return res.scalars().all(), total


async def get_message(db: AsyncSession, message_id: str) -> ContactMessage:
    contact = await db.get(ContactMessage, message_id)
    if not contact:
        raise NotFoundError("Message", message_id)
    return contact


async def open_message(db: AsyncSession, *, message_id: str) -> tuple[ContactMessage, User | None]:
    """Admin read; a NEW message moves to IN_PROGRESS."""
    contact = await get_message(db, message_id)
    if contact.status == ContactStatus.NEW.value:
        contact.status = ContactStatus.IN_PROGRESS.value
        await db.flush()
    user = await db.get(User, contact.user_id) if contact.user_id else None
    return contact, user


async def update_status(db: AsyncSession, *, message_id: str, status: str) -> ContactMessage:
    if status not in {s.value for s in ContactStatus}:
        raise ValidationError("Invalid status")
    contact = await get_message(db, message_id)
    contact.status = status
    await db.flush()
    return contact


async def assign_message(db: AsyncSession, *, message_id: str, assigned_to: str | None) -> ContactMessage:
    contact = await get_message(db, message_id)
    contact.assigned_to = assigned_to
    contact.status = ContactStatus.IN_PROGRESS.value
    await db.flush()
    return contact


async def respond(db: AsyncSession, *, message_id: str, response: str) -> ContactMessage:
    if not response or not response.strip():
        raise ValidationError("Response is required")
    contact = await get_message(db, message_id)
    contact.response = response
    contact.responded_at = utcnow()
    contact.status = ContactStatus.RESOLVED.value
    await db.flush()
    logger.info(f"Responded to contact message: {message_id}")
    return contact


async def delete_message(db: AsyncSession, *, message_id: str) -> None:
    contact = await get_message(db, message_id)
    await db.delete(contact)
    await db.flush()


async def message_stats(db: AsyncSession) -> dict:
    async def _count(*where) -> int:
        return (await db.execute(select(func.count(ContactMessage.id)).where(*where))).scalar_one()

    by_type = await db.execute(
        select(ContactMessage.inquiry_type, func.count(ContactMessage.id)).group_by(ContactMessage.inquiry_type)
    )
    by_priority = await db.execute(
        select(ContactMessage.priority, func.count(ContactMessage.id)).group_by(ContactMessage.priority)
    )
    return {
        "total": await _count(),
        "new": await _count(ContactMessage.status == ContactStatus.NEW.value),
        "inProgress": await _count(ContactMessage.status == ContactStatus.IN_PROGRESS.value),
        "resolved": await _count(ContactMessage.status == ContactStatus.RESOLVED.value),
        "byType": {t: c for t, c in by_type.all()},
        "byPriority": {p: c for p, c in by_priority.all()},
    }
