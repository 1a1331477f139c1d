"""
Input validation and normalization utilities for the Storefront API.
"""
import time
import uuid

from fastapi import HTTPException
from slugify import slugify as _slugify


def slugify(text: str) -> str:
    """
    Lower-case, transliterate to ASCII, collapse everything else to '-'.

    "Gaming Laptops & Accessories" -> "gaming-laptops-accessories"
    "Café" -> "cafe"
    """
    return _slugify(text)


def timestamped_slug(text: str) -> str:
    """Slug with a millisecond suffix, used when the plain slug is taken."""
    return f"{slugify(text)}-{int(time.time() * 1000)}"


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


def validate_uuid(value: str, field: str = "id") -> str:
    """
    Validate a UUID identifier.

    Raises:
        HTTPException(400) if the value is not a UUID
    """
    if not value or not is_uuid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {field}: expected a UUID")
    return value


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_code(code: str) -> str:
    """Coupon codes are stored and compared upper-case."""
    return code.strip().upper()
