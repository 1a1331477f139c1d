"""
Notification endpoints — the signed-in user's feed and admin management.

Unscheduled notifications are pushed over the real-time hub right after
commit; scheduled ones are left to the NotificationScheduler.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_current_user, get_realtime, pagination_params, require_admin
from domain.enums import NotificationType
from domain.errors import ValidationError
from domain.responses import paginated_response, success_response
from models import NotificationCreateRequest, NotificationUpdateRequest
from services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _check_type(value: Optional[str]) -> None:
    if value is not None and value not in {t.value for t in NotificationType}:
        raise ValidationError("Invalid notification type", field="type")


# ── User feed ───────────────────────────────────────────────────────

@router.get("")
async def my_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await notification_service.list_for_user(
        db, user=user, limit=page["limit"], offset=page["offset"], unread_only=unread_only
    )
    return paginated_response("notifications", items, page=page["page"], limit=page["limit"], total=total)


@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return success_response(data={"count": await notification_service.unread_count(db, user=user)})


@router.patch("/read-all")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await notification_service.mark_all_read(db, user=user)
    await db.commit()
    return success_response(message="All notifications marked as read")


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await notification_service.mark_read(db, user=user, notification_id=notification_id)
    await db.commit()
    return success_response(message="Notification marked as read")


# ── Admin ───────────────────────────────────────────────────────────

@router.get("/admin")
async def list_all(
    type: Optional[str] = None,
    is_global: Optional[bool] = Query(None, alias="isGlobal"),
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    notifications, total = await notification_service.list_all(
        db, limit=page["limit"], offset=page["offset"], type=type, is_global=is_global
    )
    return paginated_response(
        "notifications",
        [notification_service.serialize(n) for n in notifications],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    body: NotificationCreateRequest,
    admin: User = Depends(require_admin),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    _check_type(body.type)
    notification = await notification_service.create_notification(
        db, created_by=admin.id, **body.model_dump()
    )
    await db.commit()
    if notification.scheduled_at is None:
        await notification_service.push(realtime, notification)
    else:
        logger.info(f"Notification scheduled for {notification.scheduled_at.isoformat()}: {notification.title}")
    return success_response(
        data={"notification": notification_service.serialize(notification)},
        message="Notification scheduled" if notification.scheduled_at else "Notification sent",
    )


@router.put("/{notification_id}")
async def update_notification(
    notification_id: str,
    body: NotificationUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    _check_type(body.type)
    notification = await notification_service.update_notification(
        db, notification_id=notification_id, **body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return success_response(data={"notification": notification_service.serialize(notification)})


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.delete_notification(db, notification_id=notification_id)
    await db.commit()
    return success_response(message="Notification deleted successfully")


@router.post("/{notification_id}/send")
async def send_now(
    notification_id: str,
    _: User = Depends(require_admin),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.mark_sent_now(db, notification_id=notification_id)
    await db.commit()
    await notification_service.push(realtime, notification)
    return success_response(data={"notification": notification_service.serialize(notification)}, message="Notification sent")
