"""
Tests for order endpoints: checkout, idempotent replay, customer actions
and admin fulfilment.
"""
import pytest
from fastapi import status
from sqlalchemy.orm.exc import StaleDataError

from main import app
from services import order_service
from services.realtime import user_room


class FakeSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, frame):
        self.frames.append(frame)


def _order_body(product, shipping_address, quantity=3, **extra):
    return {
        "items": [{"productId": product.id, "quantity": quantity}],
        "shippingAddress": shipping_address,
        "paymentMethod": "COD",
        **extra,
    }


async def _checkout(client, headers, product, shipping_address, **extra):
    response = await client.post("/api/orders", json=_order_body(product, shipping_address, **extra), headers=headers)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]["order"]


class TestCheckout:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_place_order(self, client, customer, customer_headers, product, shipping_address):
        socket = FakeSocket()
        app.state.realtime.connect(socket, user_id=customer.id)
        app.state.realtime.join(socket, user_room(customer.id))

        order = await _checkout(client, customer_headers, product, shipping_address)

        assert order["orderNumber"].startswith("NSH-")
        assert order["subtotal"] == 600000
        assert order["tax"] == 48000
        assert order["shippingCost"] == 0
        assert order["total"] == 648000
        assert order["items"][0]["quantity"] == 3
        assert order["address"]["city"] == "Kampala"
        assert order["statusHistory"][0]["status"] == "PENDING"
        assert socket.frames[0]["event"] == "order_updated"

        stock = await client.get(f"/api/products/{product.id}")
        assert stock.json()["data"]["product"]["quantity"] == 7

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_replay_with_same_key_returns_first_order(self, client, customer_headers, product, shipping_address):
        body = _order_body(product, shipping_address, idempotencyKey="7b0c6a0e-retry")
        first = await client.post("/api/orders", json=body, headers=customer_headers)
        second = await client.post("/api/orders", json=body, headers=customer_headers)

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_200_OK
        assert second.json()["message"] == "Order already exists"
        assert second.json()["data"]["order"]["id"] == first.json()["data"]["order"]["id"]

        mine = await client.get("/api/orders/my-orders", headers=customer_headers)
        assert mine.json()["data"]["pagination"]["total"] == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_empty_items_fail_validation(self, client, customer_headers, shipping_address):
        response = await client.post(
            "/api/orders",
            json={"items": [], "shippingAddress": shipping_address, "paymentMethod": "COD"},
            headers=customer_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "validation"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_out_of_stock(self, client, customer_headers, cheap_product, shipping_address):
        response = await client.post(
            "/api/orders", json=_order_body(cheap_product, shipping_address, quantity=5), headers=customer_headers
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Insufficient stock" in response.json()["message"]


class TestCustomerActions:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cancel_restores_stock(self, client, customer_headers, product, shipping_address):
        order = await _checkout(client, customer_headers, product, shipping_address)

        response = await client.post(
            f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=customer_headers
        )

        assert response.status_code == status.HTTP_200_OK
        cancelled = response.json()["data"]["order"]
        assert cancelled["status"] == "CANCELLED"
        assert cancelled["statusHistory"][0]["note"] == "Changed my mind"

        stock = await client.get(f"/api/products/{product.id}")
        assert stock.json()["data"]["product"]["quantity"] == 10

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_other_customer_cannot_cancel_or_view(
        self, client, customer_headers, other_headers, product, shipping_address
    ):
        order = await _checkout(client, customer_headers, product, shipping_address)

        cancel = await client.post(f"/api/orders/{order['id']}/cancel", headers=other_headers)
        view = await client.get(f"/api/orders/{order['id']}", headers=other_headers)

        assert cancel.status_code == status.HTTP_403_FORBIDDEN
        assert view.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_dual_delivery_confirmation(self, client, customer_headers, admin_headers, product, shipping_address):
        order = await _checkout(client, customer_headers, product, shipping_address)
        url = f"/api/orders/{order['id']}/confirm-delivery"

        client_side = await client.patch(url, headers=customer_headers)
        assert client_side.json()["data"]["order"]["status"] == "PENDING"
        assert client_side.json()["data"]["order"]["clientConfirmedDelivery"] is True

        admin_side = await client.patch(url, headers=admin_headers)
        delivered = admin_side.json()["data"]["order"]
        assert delivered["status"] == "DELIVERED"
        assert delivered["paymentStatus"] == "PAID"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_concurrent_update_is_a_conflict(
        self, client, customer_headers, product, shipping_address, monkeypatch
    ):
        order = await _checkout(client, customer_headers, product, shipping_address)

        async def lost_update(db, *, order_id, user):
            raise StaleDataError("UPDATE statement on table 'orders' expected to update 1 row(s); 0 were matched.")

        monkeypatch.setattr(order_service, "confirm_delivery", lost_update)

        response = await client.patch(f"/api/orders/{order['id']}/confirm-delivery", headers=customer_headers)

        assert response.status_code == status.HTTP_409_CONFLICT
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "conflict"


class TestAdminFulfilment:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_status_tracking_and_payment(self, client, customer_headers, admin_headers, product, shipping_address):
        order = await _checkout(client, customer_headers, product, shipping_address)

        shipped = await client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "SHIPPED"}, headers=admin_headers
        )
        assert shipped.json()["data"]["order"]["shippedAt"] is not None

        tracked = await client.post(
            f"/api/orders/{order['id']}/tracking",
            json={"trackingNumber": "TRK-001", "shippingMethod": "Courier"},
            headers=admin_headers,
        )
        assert tracked.json()["data"]["order"]["trackingNumber"] == "TRK-001"

        paid = await client.patch(
            f"/api/orders/{order['id']}/payment-status", json={"paymentStatus": "PAID"}, headers=admin_headers
        )
        assert paid.json()["data"]["order"]["paidAt"] is not None

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_list_and_stats(self, client, customer_headers, admin_headers, product, shipping_address):
        await _checkout(client, customer_headers, product, shipping_address, quantity=1)

        listing = await client.get("/api/orders", params={"status": "PENDING"}, headers=admin_headers)
        orders = listing.json()["data"]["orders"]
        assert len(orders) == 1
        assert orders[0]["user"]["email"] == "jane@example.com"

        stats = await client.get("/api/orders/stats", headers=admin_headers)
        assert stats.json()["data"]["stats"]["pendingOrders"] == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_cannot_list_all(self, client, customer_headers):
        response = await client.get("/api/orders", headers=customer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_delete(self, client, customer_headers, admin_headers, product, shipping_address):
        order = await _checkout(client, customer_headers, product, shipping_address, quantity=1)

        deleted = await client.delete(f"/api/orders/{order['id']}", headers=admin_headers)
        assert deleted.status_code == status.HTTP_200_OK

        missing = await client.get(f"/api/orders/{order['id']}", headers=admin_headers)
        assert missing.status_code == status.HTTP_404_NOT_FOUND
