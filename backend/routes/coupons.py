"""
Coupon endpoints — checkout validation plus admin CRUD.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_current_user, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from models import CouponCreateRequest, CouponUpdateRequest, CouponValidateRequest
from services import coupon_service

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


@router.post("/validate")
async def validate_coupon(
    body: CouponValidateRequest,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Preview a coupon against a cart total; nothing is redeemed."""
    result = await coupon_service.validate_coupon(db, code=body.code, order_total=body.order_total)
    return success_response(data=result)


# ── Admin ───────────────────────────────────────────────────────────

@router.get("")
async def list_coupons(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupons, total = await coupon_service.list_coupons(
        db, limit=page["limit"], offset=page["offset"], status=status_filter, search=search
    )
    return paginated_response(
        "coupons",
        [coupon_service.serialize_coupon(c) for c in coupons],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.get("/{coupon_id}")
async def get_coupon(coupon_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    coupon = await coupon_service.get_coupon(db, coupon_id)
    return success_response(data={"coupon": coupon_service.serialize_coupon(coupon)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_coupon(
    body: CouponCreateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupon = await coupon_service.create_coupon(db, **body.model_dump())
    await db.commit()
    return success_response(data={"coupon": coupon_service.serialize_coupon(coupon)}, message="Coupon created")


@router.put("/{coupon_id}")
async def update_coupon(
    coupon_id: str,
    body: CouponUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    coupon = await coupon_service.update_coupon(db, coupon_id=coupon_id, **body.model_dump(exclude_unset=True))
    await db.commit()
    return success_response(data={"coupon": coupon_service.serialize_coupon(coupon)}, message="Coupon updated")


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await coupon_service.delete_coupon(db, coupon_id=coupon_id)
    await db.commit()
    return success_response(message="Coupon deleted")


@router.patch("/{coupon_id}/toggle-status")
async def toggle_status(coupon_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    coupon = await coupon_service.toggle_status(db, coupon_id=coupon_id)
    await db.commit()
    state = "activated" if coupon.is_active else "deactivated"
    return success_response(data={"coupon": coupon_service.serialize_coupon(coupon)}, message=f"Coupon {state}")
