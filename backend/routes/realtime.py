"""
WebSocket endpoint for real-time notifications and order chat.

Connect to `/ws?token=<jwt>`. Frames in both directions are JSON objects
`{"event": <name>, "data": <payload>}`.

Client events:
    join_user_notifications    join user_<own id>
    join_admin_notifications   join admin_notifications (admins only)
    join_order_chat            data = order id; owner or admin only
    leave_order_chat           data = order id
    send_message               data = {orderId, message}; relayed to the
                               order room as `receive_message`
"""
import logging

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select

from db_models import User
from domain.constants import ADMIN_ROOM, EVENT_RECEIVE_MESSAGE
from domain.enums import ADMIN_ROLES
from middleware.auth import decode_access_token
from services import chat_service
from services.realtime import order_room, user_room

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


async def _authenticate(websocket: WebSocket, token: str | None) -> User | None:
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except HTTPException:
        return None
    async with websocket.app.state.session_factory() as db:
        user = (await db.execute(select(User).where(User.id == payload.get("sub")))).scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


def _order_id(data) -> str | None:
    if isinstance(data, dict):
        return data.get("orderId")
    return data if isinstance(data, str) else None


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = Query(None)):
    user = await _authenticate(websocket, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = websocket.app.state.realtime
    await websocket.accept()
    hub.connect(websocket, user_id=user.id, role=user.role)

    try:
        while True:
            frame = await websocket.receive_json()
            if not isinstance(frame, dict):
                continue
            event, data = frame.get("event"), frame.get("data")

            if event == "join_user_notifications":
                hub.join(websocket, user_room(user.id))

            elif event == "join_admin_notifications":
                if user.role in ADMIN_ROLES:
                    hub.join(websocket, ADMIN_ROOM)
                else:
                    logger.warning(f"Non-admin {user.id} tried to join admin notifications")

            elif event == "join_order_chat":
                order_id = _order_id(data)
                if not order_id:
                    continue
                async with websocket.app.state.session_factory() as db:
                    allowed = await chat_service.can_join(db, order_id=order_id, user_id=user.id, role=user.role)
                if allowed:
                    hub.join(websocket, order_room(order_id))
                else:
                    logger.warning(f"User {user.id} denied access to order chat {order_id}")

            elif event == "leave_order_chat":
                order_id = _order_id(data)
                if order_id:
                    hub.leave(websocket, order_room(order_id))

            elif event == "send_message":
                order_id = _order_id(data)
                # Relay only into rooms this socket was admitted to
                if isinstance(data, dict) and order_id and order_room(order_id) in hub.rooms_of(websocket):
                    await hub.emit(EVENT_RECEIVE_MESSAGE, data.get("message"), room=order_room(order_id), exclude=websocket)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
