"""
Tests for the WebSocket room hub and the /ws handshake.
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import app
from routes.realtime import _order_id
from services.realtime import RealtimeHub, order_room, user_room


class FakeSocket:
    """Records frames sent by the hub."""

    def __init__(self, broken: bool = False):
        self.frames = []
        self.broken = broken

    async def send_json(self, frame):
        if self.broken:
            raise RuntimeError("connection reset")
        self.frames.append(frame)


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


class TestRealtimeHub:

    @pytest.mark.asyncio
    async def test_emit_reaches_only_room_members(self, hub):
        alice, bob = FakeSocket(), FakeSocket()
        hub.connect(alice, user_id="u1", role="CUSTOMER")
        hub.connect(bob, user_id="u2", role="CUSTOMER")
        hub.join(alice, user_room("u1"))

        delivered = await hub.emit_to_user("u1", "new_notification", {"id": "n1"})

        assert delivered == 1
        assert alice.frames == [{"event": "new_notification", "data": {"id": "n1"}}]
        assert bob.frames == []

    @pytest.mark.asyncio
    async def test_emit_without_room_broadcasts(self, hub):
        sockets = [FakeSocket() for _ in range(3)]
        for s in sockets:
            hub.connect(s)
        assert await hub.emit("new_notification", {}) == 3

    @pytest.mark.asyncio
    async def test_exclude_skips_sender(self, hub):
        sender, peer = FakeSocket(), FakeSocket()
        for s in (sender, peer):
            hub.connect(s)
            hub.join(s, order_room("o1"))

        await hub.emit("receive_message", "hi", room=order_room("o1"), exclude=sender)

        assert sender.frames == []
        assert peer.frames[0]["data"] == "hi"

    @pytest.mark.asyncio
    async def test_broken_socket_dropped(self, hub):
        good, bad = FakeSocket(), FakeSocket(broken=True)
        for s in (good, bad):
            hub.connect(s)
            hub.join(s, "admin_notifications")

        delivered = await hub.emit_to_admins("new_notification", {})

        assert delivered == 1
        assert hub.room_size("admin_notifications") == 1
        assert hub.get_status()["connections"] == 1

    @pytest.mark.unit
    def test_leave_and_disconnect_clean_rooms(self, hub):
        s = FakeSocket()
        hub.connect(s)
        hub.join(s, order_room("o1"))
        hub.join(s, user_room("u1"))
        assert hub.rooms_of(s) == {"order_o1", "user_u1"}

        hub.leave(s, order_room("o1"))
        assert hub.room_size("order_o1") == 0

        hub.disconnect(s)
        assert hub.rooms_of(s) == set()
        assert hub.room_size("user_u1") == 0

    @pytest.mark.unit
    def test_join_requires_connection(self, hub):
        s = FakeSocket()
        hub.join(s, "order_o1")
        assert hub.room_size("order_o1") == 0


class TestSocketEndpoint:

    @pytest.mark.unit
    def test_order_id_from_payload(self):
        assert _order_id("abc") == "abc"
        assert _order_id({"orderId": "abc", "message": "hi"}) == "abc"
        assert _order_id(42) is None

    @pytest.mark.unit
    def test_connection_without_token_is_refused(self):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == 1008
