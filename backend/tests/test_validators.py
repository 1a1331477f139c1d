"""
Tests for input validation and normalization helpers.

Tests: slugify, timestamped_slug, is_uuid, validate_uuid, normalize_email, normalize_code
"""
import pytest
from fastapi import HTTPException

from utils.validators import (
    is_uuid, normalize_code, normalize_email, slugify, timestamped_slug, validate_uuid,
)

VALID_ID = "3f2b8c1e-6d4a-4b7e-9c2f-1a5d8e0b7c44"


class TestSlugify:

    @pytest.mark.unit
    @pytest.mark.parametrize("text, expected", [
        ("Gaming Laptops & Accessories", "gaming-laptops-accessories"),
        ("  Wireless   Mouse ", "wireless-mouse"),
        ("snake_case_name", "snake-case-name"),
        ("--Already-Slugged--", "already-slugged"),
        ("100% Cotton!", "100-cotton"),
        ("Café Crème", "cafe-creme"),
    ])
    def test_slugify(self, text, expected):
        assert slugify(text) == expected

    @pytest.mark.unit
    def test_timestamped_slug_keeps_base(self):
        slug = timestamped_slug("Desk Lamp")
        base, _, suffix = slug.rpartition("-")
        assert base == "desk-lamp"
        assert suffix.isdigit()


class TestUuid:

    @pytest.mark.unit
    def test_is_uuid(self):
        assert is_uuid(VALID_ID) is True
        assert is_uuid("not-a-uuid") is False

    @pytest.mark.unit
    def test_valid_uuid_passes(self):
        assert validate_uuid(VALID_ID) == VALID_ID

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["", None, "12345"])
    def test_invalid_uuid_raises_400(self, value):
        with pytest.raises(HTTPException) as exc_info:
            validate_uuid(value, field="productId")
        assert exc_info.value.status_code == 400
        assert "productId" in exc_info.value.detail


class TestNormalization:

    @pytest.mark.unit
    def test_email(self):
        assert normalize_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"

    @pytest.mark.unit
    def test_coupon_code(self):
        assert normalize_code(" welcome20 ") == "WELCOME20"
