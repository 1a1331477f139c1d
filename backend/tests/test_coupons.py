"""
Tests for coupon discount math, eligibility and the coupon endpoints.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from db_models import Coupon, utcnow
from domain.errors import InvalidStateError
from models import CouponCreateRequest
from services.coupon_service import check_eligibility, compute_discount


def _coupon(**overrides) -> Coupon:
    fields = dict(
        code="TEST",
        discount_type="PERCENTAGE",
        discount_value=Decimal("10"),
        min_order_value=None,
        max_discount=None,
        usage_limit=None,
        used_count=0,
        starts_at=None,
        expires_at=None,
        is_active=True,
    )
    fields.update(overrides)
    return Coupon(**fields)


class TestComputeDiscount:

    @pytest.mark.unit
    def test_percentage(self):
        assert compute_discount(_coupon(), Decimal("250000")) == Decimal("25000.00")

    @pytest.mark.unit
    def test_percentage_capped_by_max_discount(self):
        coupon = _coupon(discount_value=Decimal("50"), max_discount=Decimal("30000"))
        assert compute_discount(coupon, Decimal("600000")) == Decimal("30000.00")

    @pytest.mark.unit
    def test_fixed_amount(self):
        coupon = _coupon(discount_type="FIXED", discount_value=Decimal("15000"))
        assert compute_discount(coupon, Decimal("100000")) == Decimal("15000.00")

    @pytest.mark.unit
    def test_never_exceeds_order_amount(self):
        coupon = _coupon(discount_type="FIXED", discount_value=Decimal("15000"))
        assert compute_discount(coupon, Decimal("9000")) == Decimal("9000.00")


class TestEligibility:

    @pytest.mark.unit
    def test_active_coupon_passes(self):
        check_eligibility(_coupon(), Decimal("1000"))

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"is_active": False}, "no longer active"),
            ({"expires_at": utcnow() - timedelta(days=1)}, "expired"),
            ({"starts_at": utcnow() + timedelta(days=1)}, "not yet valid"),
            ({"usage_limit": 5, "used_count": 5}, "usage limit"),
            ({"min_order_value": Decimal("50000")}, "Minimum order value"),
        ],
    )
    def test_ineligible(self, overrides, message):
        with pytest.raises(InvalidStateError) as exc_info:
            check_eligibility(_coupon(**overrides), Decimal("1000"))
        assert message in exc_info.value.message


class TestCouponRequest:

    @pytest.mark.unit
    def test_discount_type_is_upper_cased(self):
        body = CouponCreateRequest(code="WELCOME", discountType="percentage", discountValue=10)
        assert body.discount_type == "PERCENTAGE"

    @pytest.mark.unit
    def test_unknown_discount_type_rejected(self):
        with pytest.raises(PydanticValidationError):
            CouponCreateRequest(code="WELCOME", discountType="bogo", discountValue=10)


class TestCouponEndpoints:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_creates_and_customer_validates(self, client, admin_headers, customer_headers):
        created = await client.post(
            "/api/coupons",
            json={"code": "welcome20", "discountType": "PERCENTAGE", "discountValue": 20, "maxDiscount": 30000},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["data"]["coupon"]["code"] == "WELCOME20"

        preview = await client.post(
            "/api/coupons/validate",
            json={"code": "welcome20", "orderTotal": 100000},
            headers=customer_headers,
        )
        assert preview.status_code == 200
        data = preview.json()["data"]
        assert data["valid"] is True
        assert data["discount"] == 20000
        assert data["newTotal"] == 80000

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_code_is_404(self, client, customer_headers):
        response = await client.post(
            "/api/coupons/validate", json={"code": "NOPE", "orderTotal": 1000}, headers=customer_headers
        )
        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["code"] == "not_found"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_cannot_create(self, client, customer_headers):
        response = await client.post(
            "/api/coupons",
            json={"code": "FREE", "discountType": "FIXED", "discountValue": 1000},
            headers=customer_headers,
        )
        assert response.status_code == 403
