"""
Tests for notification endpoints: admin creation, user feed, read state
and real-time push.
"""
import pytest

from main import app
from services.realtime import user_room


class FakeSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, frame):
        self.frames.append(frame)


async def _create(client, headers, **body):
    payload = {"title": "Order update", "message": "Your parcel is on the way", **body}
    return await client.post("/api/notifications", json=payload, headers=headers)


class TestNotificationFeed:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_targeted_notification_pushed_and_listed(self, client, admin_headers, customer, customer_headers):
        socket = FakeSocket()
        app.state.realtime.connect(socket, user_id=customer.id)
        app.state.realtime.join(socket, user_room(customer.id))

        created = await _create(client, admin_headers, userId=customer.id)
        assert created.status_code == 201
        assert created.json()["message"] == "Notification sent"
        assert socket.frames[0]["event"] == "new_notification"

        feed = await client.get("/api/notifications", headers=customer_headers)
        assert feed.status_code == 200
        data = feed.json()["data"]
        assert data["pagination"]["total"] == 1
        assert data["notifications"][0]["isRead"] is False

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_read_all_zeroes_unread_count(self, client, admin_headers, customer, customer_headers):
        await _create(client, admin_headers, userId=customer.id)
        await _create(client, admin_headers, isGlobal=True, title="Holiday hours")

        count = await client.get("/api/notifications/unread-count", headers=customer_headers)
        assert count.json()["data"]["count"] == 2

        marked = await client.patch("/api/notifications/read-all", headers=customer_headers)
        assert marked.status_code == 200

        count = await client.get("/api/notifications/unread-count", headers=customer_headers)
        assert count.json()["data"]["count"] == 0

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_mark_single_read(self, client, admin_headers, customer, customer_headers):
        created = await _create(client, admin_headers, userId=customer.id)
        notification_id = created.json()["data"]["notification"]["id"]

        response = await client.patch(f"/api/notifications/{notification_id}/read", headers=customer_headers)
        assert response.status_code == 200

        feed = await client.get("/api/notifications", params={"unreadOnly": "true"}, headers=customer_headers)
        assert feed.json()["data"]["notifications"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_future_notification_hidden_until_due(self, client, admin_headers, customer, customer_headers):
        created = await _create(client, admin_headers, userId=customer.id, scheduledAt="2099-01-01T00:00:00Z")
        assert created.status_code == 201
        assert created.json()["message"] == "Notification scheduled"
        assert created.json()["data"]["notification"]["sentAt"] is None

        feed = await client.get("/api/notifications", headers=customer_headers)
        assert feed.json()["data"]["notifications"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_only_notifications_hidden_from_customers(
        self, client, admin_headers, customer_headers
    ):
        await _create(client, admin_headers, productId="ADMIN_ONLY", isGlobal=True, title="Low stock")

        customer_feed = await client.get("/api/notifications", headers=customer_headers)
        admin_feed = await client.get("/api/notifications", headers=admin_headers)

        assert customer_feed.json()["data"]["notifications"] == []
        assert admin_feed.json()["data"]["notifications"][0]["title"] == "Low stock"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client, admin_headers):
        response = await _create(client, admin_headers, type="SPAM", isGlobal=True)
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_cannot_create(self, client, customer_headers):
        response = await _create(client, customer_headers, isGlobal=True)
        assert response.status_code == 403
