"""
Standard API response helpers for consistent response formatting.

All endpoints use these helpers to ensure consistent response envelopes:
- Success: { "success": true, "data": <payload> } or { "success": true, "message": "..." }
- Error:   { "success": false, "message": "...", "code": "...", "details": {...} }
"""
import math
from datetime import datetime
from decimal import Decimal
from typing import Any


def success_response(
    data: Any = None,
    message: str | None = None,
    meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: The response payload
        message: Optional human-readable message
        meta: Optional metadata

    Returns:
        dict: { "success": true, "data": <data>, "message": <message>, "meta": <meta> }
    """
    response: dict[str, Any] = {"success": True}
    if message is not None:
        response["message"] = message
    if data is not None:
        response["data"] = data
    if meta:
        response["meta"] = meta
    return response


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    """Page-number pagination block embedded in list payloads."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def paginated_response(key: str, items: list[Any], *, page: int, limit: int, total: int) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    Returns:
        dict: { "success": true, "data": { <key>: items, "pagination": {...} } }
    """
    return success_response(
        data={key: items, "pagination": pagination_meta(page, limit, total)}
    )


def money(value: Decimal | int | float | None) -> float | None:
    """Render a fixed-precision amount for JSON output."""
    if value is None:
        return None
    return float(value)


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
