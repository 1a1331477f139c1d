"""
Tests for review endpoints and moderation.
"""
import pytest
from fastapi import status


async def _submit(client, headers, product, rating=4, **extra):
    return await client.post(
        "/api/reviews",
        json={"productId": product.id, "rating": rating, "title": "Solid", **extra},
        headers=headers,
    )


class TestReviews:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_new_review_is_pending(self, client, customer_headers, product):
        response = await _submit(client, customer_headers, product)

        assert response.status_code == status.HTTP_201_CREATED
        review = response.json()["data"]["review"]
        assert review["isApproved"] is False
        assert review["isVerified"] is False
        assert review["user"]["firstName"] == "Jane"

        public = await client.get(f"/api/reviews/product/{product.id}")
        assert public.json()["data"]["reviews"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_one_review_per_product(self, client, customer_headers, product):
        await _submit(client, customer_headers, product)
        response = await _submit(client, customer_headers, product, rating=1)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "You have already reviewed this product"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_rating_out_of_range(self, client, customer_headers, product):
        response = await _submit(client, customer_headers, product, rating=6)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_approval_updates_product_rating(
        self, client, customer_headers, other_headers, admin_headers, product
    ):
        first = await _submit(client, customer_headers, product, rating=5)
        second = await _submit(client, other_headers, product, rating=2)

        pending = await client.get("/api/reviews", params={"status": "pending"}, headers=admin_headers)
        assert pending.json()["data"]["pagination"]["total"] == 2
        assert pending.json()["data"]["reviews"][0]["product"]["slug"] == "wireless-mouse"

        for created in (first, second):
            review_id = created.json()["data"]["review"]["id"]
            approved = await client.patch(f"/api/reviews/{review_id}/approve", headers=admin_headers)
            assert approved.status_code == status.HTTP_200_OK

        detail = await client.get(f"/api/products/{product.id}")
        body = detail.json()["data"]["product"]
        assert body["rating"] == 3.5
        assert body["reviewCount"] == 2

        public = await client.get(f"/api/reviews/product/{product.id}")
        data = public.json()["data"]
        assert data["pagination"]["total"] == 2
        assert data["ratingDistribution"]["5"] == 1
        assert data["ratingDistribution"]["2"] == 1

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_reject_removes_review(self, client, customer_headers, admin_headers, product):
        created = await _submit(client, customer_headers, product)
        review_id = created.json()["data"]["review"]["id"]

        response = await client.patch(f"/api/reviews/{review_id}/reject", headers=admin_headers)
        assert response.status_code == status.HTTP_200_OK

        listing = await client.get("/api/reviews", headers=admin_headers)
        assert listing.json()["data"]["reviews"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_only_author_may_edit(self, client, customer_headers, other_headers, product):
        created = await _submit(client, customer_headers, product)
        review_id = created.json()["data"]["review"]["id"]

        response = await client.put(f"/api/reviews/{review_id}", json={"rating": 1}, headers=other_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

        own = await client.put(f"/api/reviews/{review_id}", json={"comment": "Still good"}, headers=customer_headers)
        assert own.json()["data"]["review"]["comment"] == "Still good"
