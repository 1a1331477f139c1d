"""
Contact endpoints — public inquiry form and the admin support inbox.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_optional_user, get_realtime, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from middleware.rate_limit import rate_limit
from models import ContactAssignRequest, ContactCreateRequest, ContactRespondRequest, ContactStatusRequest
from services import contact_service, notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/contact", tags=["contact"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(max_requests=10, window_seconds=60 * 60))],
)
async def create_message(
    body: ContactCreateRequest,
    user: Optional[User] = Depends(get_optional_user),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    contact, notification = await contact_service.create_message(
        db,
        name=body.name,
        email=body.email,
        subject=body.subject,
        message=body.message,
        inquiry_type=body.inquiry_type,
        phone=body.phone,
        user_id=user.id if user else None,
    )
    await db.commit()
    await notification_service.push(realtime, notification)
    return success_response(
        data={"message": contact_service.serialize_message(contact)},
        message="Your message has been sent. We'll get back to you soon!",
    )


# ── Admin ───────────────────────────────────────────────────────────

@router.get("")
async def list_messages(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    inquiry_type: Optional[str] = Query(None, alias="inquiryType"),
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    messages, total = await contact_service.list_messages(
        db,
        limit=page["limit"],
        offset=page["offset"],
        status=status_filter,
        priority=priority,
        inquiry_type=inquiry_type,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paginated_response(
        "messages",
        [contact_service.serialize_message(m) for m in messages],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.get("/stats")
async def message_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"stats": await contact_service.message_stats(db)})


@router.get("/{message_id}")
async def get_message(message_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    """Opening a NEW message marks it IN_PROGRESS."""
    contact, sender = await contact_service.open_message(db, message_id=message_id)
    await db.commit()
    return success_response(data={"message": contact_service.serialize_message(contact, user=sender)})


@router.patch("/{message_id}/status")
async def update_status(
    message_id: str,
    body: ContactStatusRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    contact = await contact_service.update_status(db, message_id=message_id, status=body.status)
    await db.commit()
    return success_response(data={"message": contact_service.serialize_message(contact)}, message="Status updated")


@router.patch("/{message_id}/assign")
async def assign_message(
    message_id: str,
    body: ContactAssignRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    contact = await contact_service.assign_message(
        db, message_id=message_id, assigned_to=body.assigned_to or admin.id
    )
    await db.commit()
    return success_response(data={"message": contact_service.serialize_message(contact)}, message="Message assigned")


@router.post("/{message_id}/respond")
async def respond(
    message_id: str,
    body: ContactRespondRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    contact = await contact_service.respond(db, message_id=message_id, response=body.response)
    await db.commit()
    return success_response(data={"message": contact_service.serialize_message(contact)}, message="Response sent")


@router.delete("/{message_id}")
async def delete_message(message_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await contact_service.delete_message(db, message_id=message_id)
    await db.commit()
    return success_response(message="Message deleted")
