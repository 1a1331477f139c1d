"""
Tests for account endpoints (addresses, admin user management), the admin
dashboard and order chat.
"""
import pytest
from fastapi import status

from domain.constants import ADMIN_ROOM
from main import app
from services.dashboard_service import growth_percent
from services.realtime import order_room


class FakeSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, frame):
        self.frames.append(frame)


ADDRESS = {"firstName": "Jane", "lastName": "Tester", "addressLine1": "Plot 4 Kampala Rd", "city": "Kampala"}


async def _place_order(client, headers, product, shipping_address, quantity=1):
    response = await client.post(
        "/api/orders",
        json={
            "items": [{"productId": product.id, "quantity": quantity}],
            "shippingAddress": shipping_address,
            "paymentMethod": "COD",
        },
        headers=headers,
    )
    return response.json()["data"]["order"]


class TestAddresses:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_single_default_address(self, client, customer_headers):
        first = await client.post("/api/users/addresses", json={**ADDRESS, "isDefault": True}, headers=customer_headers)
        second = await client.post(
            "/api/users/addresses", json={**ADDRESS, "city": "Entebbe", "isDefault": True}, headers=customer_headers
        )
        assert first.status_code == status.HTTP_201_CREATED

        listing = await client.get("/api/users/addresses", headers=customer_headers)
        addresses = listing.json()["data"]["addresses"]
        defaults = [a["city"] for a in addresses if a["isDefault"]]
        assert defaults == ["Entebbe"]
        assert addresses[0]["id"] == second.json()["data"]["address"]["id"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cannot_touch_someone_elses_address(self, client, customer_headers, other_headers):
        created = await client.post("/api/users/addresses", json=ADDRESS, headers=customer_headers)
        address_id = created.json()["data"]["address"]["id"]

        response = await client.delete(f"/api/users/addresses/{address_id}", headers=other_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestUserAdmin:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_and_toggle(self, client, admin_headers, customer):
        listing = await client.get("/api/users", params={"role": "CUSTOMER"}, headers=admin_headers)
        users = listing.json()["data"]["users"]
        assert [u["email"] for u in users] == ["jane@example.com"]
        assert users[0]["orderCount"] == 0

        toggled = await client.patch(f"/api/users/{customer.id}/status", headers=admin_headers)
        assert toggled.json()["message"] == "User deactivated"

        login = await client.post("/api/auth/login", json={"email": customer.email, "password": "password123"})
        assert login.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, client, admin, admin_headers):
        response = await client.delete(f"/api/users/{admin.id}", headers=admin_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cannot_delete_customer_with_orders(
        self, client, admin_headers, customer, customer_headers, product, shipping_address
    ):
        await _place_order(client, customer_headers, product, shipping_address)

        response = await client.delete(f"/api/users/{customer.id}", headers=admin_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

        detail = await client.get(f"/api/users/{customer.id}", headers=admin_headers)
        assert detail.json()["data"]["user"]["counts"]["orders"] == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_stats(self, client, admin_headers, customer, other_customer):
        response = await client.get("/api/users/stats", headers=admin_headers)
        stats = response.json()["data"]["stats"]
        assert stats["total"] == stats["admins"] + stats["customers"]
        assert stats["inactive"] == 0


class TestDashboard:

    @pytest.mark.unit
    def test_growth_percent(self):
        assert growth_percent(150.0, 100.0) == 50.0
        assert growth_percent(80.0, 0.0) == 100.0

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_stats_and_revenue(self, client, admin_headers, customer_headers, product, shipping_address):
        order = await _place_order(client, customer_headers, product, shipping_address, quantity=3)
        await client.patch(
            f"/api/orders/{order['id']}/payment-status", json={"paymentStatus": "PAID"}, headers=admin_headers
        )

        stats = (await client.get("/api/dashboard/stats", headers=admin_headers)).json()["data"]["stats"]
        assert stats["orders"]["total"] == 1
        assert stats["revenue"]["total"] == 648000
        assert stats["revenue"]["thisMonth"] == 648000

        chart = (await client.get("/api/dashboard/revenue", params={"period": "7days"}, headers=admin_headers)).json()
        assert chart["data"]["chart"][0]["revenue"] == 648000

        top = (await client.get("/api/dashboard/products/top", headers=admin_headers)).json()["data"]["products"]
        assert top[0]["soldCount"] == 3

        breakdown = (await client.get("/api/dashboard/orders", headers=admin_headers)).json()["data"]
        assert breakdown["byPayment"] == {"PAID": 1}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_low_stock(self, client, admin_headers, cheap_product):
        response = await client.get("/api/dashboard/products/low-stock", headers=admin_headers)
        assert [p["name"] for p in response.json()["data"]["products"]] == ["USB Cable"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customers_forbidden(self, client, customer_headers):
        response = await client.get("/api/dashboard/stats", headers=customer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestChat:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_message_reaches_room_and_admins(
        self, client, admin_headers, customer_headers, product, shipping_address
    ):
        order = await _place_order(client, customer_headers, product, shipping_address)
        room_socket, admin_socket = FakeSocket(), FakeSocket()
        hub = app.state.realtime
        hub.connect(room_socket)
        hub.join(room_socket, order_room(order["id"]))
        hub.connect(admin_socket, role="ADMIN")
        hub.join(admin_socket, ADMIN_ROOM)

        sent = await client.post(f"/api/chat/{order['id']}", json={"content": "Is it shipped?"}, headers=customer_headers)

        assert sent.status_code == status.HTTP_201_CREATED
        assert sent.json()["data"]["message"]["isAdmin"] is False
        assert room_socket.frames[0]["event"] == "receive_message"
        assert [f["event"] for f in admin_socket.frames] == ["new_message_notification", "new_notification"]

        chats = await client.get("/api/chat", headers=admin_headers)
        assert chats.json()["data"]["chats"][0]["lastMessage"]["content"] == "Is it shipped?"

        history = await client.get(f"/api/chat/{order['id']}", headers=admin_headers)
        assert len(history.json()["data"]["messages"]) == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_stranger_cannot_read(self, client, customer_headers, other_headers, product, shipping_address):
        order = await _place_order(client, customer_headers, product, shipping_address)

        response = await client.get(f"/api/chat/{order['id']}", headers=other_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, client, customer_headers, product, shipping_address):
        order = await _place_order(client, customer_headers, product, shipping_address)

        response = await client.post(f"/api/chat/{order['id']}", json={"content": "  "}, headers=customer_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
