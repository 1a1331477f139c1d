"""
Real-time hub — WebSocket room registry and event fan-out.

Frames on the wire are JSON objects `{"event": <name>, "data": <payload>}`.
Rooms:
    user_<id>             — one user's notifications
    admin_notifications   — every connected admin
    order_<id>            — chat participants of one order

The hub is constructed once in main.py and reached through
`deps.get_realtime`. Services receive it as an argument so they can be
exercised without a running server.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from domain.constants import ADMIN_ROOM, ORDER_ROOM_PREFIX, USER_ROOM_PREFIX

logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


def order_room(order_id: str) -> str:
    return f"{ORDER_ROOM_PREFIX}{order_id}"


@dataclass
class Connection:
    """A connected socket plus the identity it authenticated as."""
    socket: Any
    user_id: str | None = None
    role: str | None = None
    rooms: set[str] = field(default_factory=set)


class RealtimeHub:
    """Tracks sockets per room and pushes events to them."""

    def __init__(self):
        self._connections: dict[int, Connection] = {}
        self._rooms: dict[str, set[int]] = defaultdict(set)
        self.events_sent = 0

    # ── Membership ──────────────────────────────────────────────────

    def connect(self, socket: Any, *, user_id: str | None = None, role: str | None = None) -> Connection:
        conn = Connection(socket=socket, user_id=user_id, role=role)
        self._connections[id(socket)] = conn
        logger.info(f"Socket connected (user={user_id}, total={len(self._connections)})")
        return conn

    def disconnect(self, socket: Any) -> None:
        conn = self._connections.pop(id(socket), None)
        if not conn:
            return
        for room in conn.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(id(socket))
                if not members:
                    del self._rooms[room]
        logger.info(f"Socket disconnected (user={conn.user_id}, total={len(self._connections)})")

    def join(self, socket: Any, room: str) -> None:
        conn = self._connections.get(id(socket))
        if not conn:
            return
        conn.rooms.add(room)
        self._rooms[room].add(id(socket))

    def leave(self, socket: Any, room: str) -> None:
        conn = self._connections.get(id(socket))
        if not conn:
            return
        conn.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(id(socket))
            if not members:
                del self._rooms[room]

    def rooms_of(self, socket: Any) -> set[str]:
        conn = self._connections.get(id(socket))
        return set(conn.rooms) if conn else set()

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    # ── Delivery ────────────────────────────────────────────────────

    async def emit(self, event: str, data: Any, room: str | None = None, *, exclude: Any = None) -> int:
        """
        Send an event to a room, or to every connection when room is None.
        `exclude` skips one socket (the sender of a relayed frame).

        Returns the number of sockets the frame was delivered to. Sockets
        that fail on send are dropped from the registry.
        """
        if room is None:
            targets = list(self._connections.values())
        else:
            targets = [self._connections[sid] for sid in list(self._rooms.get(room, ())) if sid in self._connections]
        if exclude is not None:
            targets = [conn for conn in targets if conn.socket is not exclude]

        delivered = 0
        frame = {"event": event, "data": data}
        for conn in targets:
            try:
                await conn.socket.send_json(frame)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping socket after send failure ({event}): {e}")
                self.disconnect(conn.socket)

        self.events_sent += delivered
        return delivered

    async def emit_to_user(self, user_id: str, event: str, data: Any) -> int:
        return await self.emit(event, data, room=user_room(user_id))

    async def emit_to_admins(self, event: str, data: Any) -> int:
        return await self.emit(event, data, room=ADMIN_ROOM)

    async def emit_to_order(self, order_id: str, event: str, data: Any) -> int:
        return await self.emit(event, data, room=order_room(order_id))

    def get_status(self) -> dict:
        return {
            "connections": len(self._connections),
            "rooms": len(self._rooms),
            "eventsSent": self.events_sent,
        }
