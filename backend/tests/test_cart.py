"""
Tests for cart endpoints.
"""
import pytest
from fastapi import status


class TestCart:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_add_merges_lines(self, client, customer_headers, product):
        await client.post("/api/cart", json={"productId": product.id, "quantity": 2}, headers=customer_headers)
        response = await client.post("/api/cart", json={"productId": product.id}, headers=customer_headers)

        assert response.status_code == status.HTTP_200_OK
        cart = response.json()["data"]
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert cart["summary"] == {"itemCount": 3, "subtotal": 600000}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_add_beyond_stock_rejected(self, client, customer_headers, cheap_product):
        response = await client.post(
            "/api/cart", json={"productId": cheap_product.id, "quantity": 3}, headers=customer_headers
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Insufficient stock"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_malformed_product_id(self, client, customer_headers):
        response = await client.post("/api/cart", json={"productId": "mouse"}, headers=customer_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Invalid productId: expected a UUID"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_and_remove(self, client, customer_headers, product):
        await client.post("/api/cart", json={"productId": product.id}, headers=customer_headers)

        updated = await client.put(f"/api/cart/{product.id}", json={"quantity": 4}, headers=customer_headers)
        assert updated.json()["data"]["items"][0]["quantity"] == 4

        too_many = await client.put(f"/api/cart/{product.id}", json={"quantity": 40}, headers=customer_headers)
        assert too_many.status_code == status.HTTP_400_BAD_REQUEST

        removed = await client.delete(f"/api/cart/{product.id}", headers=customer_headers)
        assert removed.json()["data"]["items"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_carts_are_per_user(self, client, customer_headers, other_headers, product):
        await client.post("/api/cart", json={"productId": product.id}, headers=customer_headers)

        response = await client.get("/api/cart", headers=other_headers)
        assert response.json()["data"]["items"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_clear(self, client, customer_headers, product, cheap_product):
        await client.post("/api/cart", json={"productId": product.id}, headers=customer_headers)
        await client.post("/api/cart", json={"productId": cheap_product.id}, headers=customer_headers)

        await client.delete("/api/cart", headers=customer_headers)

        response = await client.get("/api/cart", headers=customer_headers)
        assert response.json()["data"]["summary"]["itemCount"] == 0

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_sync_clamps_to_stock_and_reports_failures(self, client, customer_headers, cheap_product):
        response = await client.post(
            "/api/cart/sync",
            json={"items": [
                {"productId": cheap_product.id, "quantity": 5},
                {"productId": "00000000-0000-0000-0000-000000000000", "quantity": 1},
            ]},
            headers=customer_headers,
        )

        data = response.json()["data"]
        assert data["results"]["synced"] == [{"productId": cheap_product.id, "quantity": 2}]
        assert data["results"]["failed"][0]["reason"] == "Product not available"
        assert data["items"][0]["quantity"] == 2

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_requires_login(self, client):
        response = await client.get("/api/cart")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
