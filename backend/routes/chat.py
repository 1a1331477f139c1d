"""
Order chat endpoints (REST side of the real-time chat).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user, get_realtime, require_admin
from domain.responses import success_response
from models import ChatMessageRequest
from services import chat_service

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("")
async def list_chats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"chats": await chat_service.list_chats(db)})


@router.get("/{order_id}")
async def order_messages(order_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    messages = await chat_service.order_messages(db, order_id=order_id, user=user)
    return success_response(data={"messages": [chat_service.serialize_message(m) for m in messages]})


@router.post("/{order_id}", status_code=status.HTTP_201_CREATED)
async def send_message(
    order_id: str,
    body: ChatMessageRequest,
    user: User = Depends(get_current_user),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    message, order, notification = await chat_service.send_message(
        db,
        order_id=order_id,
        sender=user,
        content=body.content,
        image_url=body.image_url,
        location=body.location,
    )
    await db.commit()
    await chat_service.broadcast(realtime, message=message, order=order, notification=notification)
    return success_response(data={"message": chat_service.serialize_message(message)})
