"""
Order endpoints — checkout, customer order views and admin fulfilment.

Every status-changing write is committed first and then announced as an
`order_updated` event to the order's chat room and its owner's room.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Order, User
from deps import Pagination, get_current_user, get_realtime, pagination_params, require_admin
from domain.constants import EVENT_ORDER_UPDATED
from domain.responses import paginated_response, success_response
from models import (
    CancelOrderRequest, OrderCreateRequest, OrderStatusUpdateRequest,
    PaymentStatusUpdateRequest, TrackingRequest, to_naive_utc,
)
from services import order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


async def _announce(realtime, order: Order) -> None:
    payload = order_service.event_payload(order)
    await realtime.emit_to_order(order.id, EVENT_ORDER_UPDATED, payload)
    await realtime.emit_to_user(order.user_id, EVENT_ORDER_UPDATED, payload)


async def _reload(db: AsyncSession, order_id: str) -> dict:
    order = await order_service.get_order(db, order_id)
    return order_service.serialize_order(order)


# ── Customer ────────────────────────────────────────────────────────

@router.get("/my-orders")
async def my_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_my_orders(
        db, user_id=user.id, limit=page["limit"], offset=page["offset"], status=status_filter
    )
    return paginated_response(
        "orders",
        [order_service.serialize_order(o) for o in orders],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreateRequest,
    response: Response,
    user: User = Depends(get_current_user),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    """
    Place an order from explicit lines. A repeated `idempotencyKey`
    answers 200 with the order created the first time.
    """
    # A lost idempotency race rolls the session back and expires `user`
    user_id = user.id
    order, created = await order_service.create_order(
        db,
        user_id=user_id,
        items=[line.model_dump() for line in body.items],
        shipping_address=body.shipping_address.model_dump(exclude_none=True),
        payment_method=body.payment_method,
        payment_details=body.payment_details,
        idempotency_key=body.idempotency_key,
        coupon_code=body.coupon_code,
        customer_note=body.customer_note,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
        return success_response(
            data={"order": order_service.serialize_order(order)},
            message="Order already exists",
        )

    await db.commit()
    order_id = order.id
    data = await _reload(db, order_id)
    logger.info(f"Order {data['orderNumber']} placed by user {user_id}")
    await realtime.emit_to_user(user_id, EVENT_ORDER_UPDATED, order_service.event_payload(order))
    return success_response(data={"order": data}, message="Order placed successfully")


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: Optional[CancelOrderRequest] = None,
    user: User = Depends(get_current_user),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.cancel_order(
        db, order_id=order_id, user_id=user.id, reason=body.reason if body else None
    )
    await db.commit()
    await _announce(realtime, order)
    return success_response(data={"order": await _reload(db, order_id)}, message="Order cancelled successfully")


@router.patch("/{order_id}/confirm-delivery")
async def confirm_delivery(
    order_id: str,
    user: User = Depends(get_current_user),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    """Either side may confirm; the order is DELIVERED once both have."""
    order = await order_service.confirm_delivery(db, order_id=order_id, user=user)
    await db.commit()
    await _announce(realtime, order)
    return success_response(data={"order": await _reload(db, order_id)}, message="Delivery confirmed")


# ── Admin ───────────────────────────────────────────────────────────

@router.get("")
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    search: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        limit=page["limit"],
        offset=page["offset"],
        status=status_filter,
        payment_status=payment_status,
        search=search,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paginated_response(
        "orders",
        [order_service.serialize_order(o) for o in orders],
        page=page["page"],
        limit=page["limit"],
        total=total,
    )


@router.get("/stats")
async def order_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"stats": await order_service.order_stats(db)})


@router.get("/{order_id}")
async def get_order(order_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order = await order_service.get_order_for_viewer(db, order_id=order_id, viewer=user)
    return success_response(data={"order": order_service.serialize_order(order)})


@router.patch("/{order_id}/status")
async def update_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    admin: User = Depends(require_admin),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.update_status(
        db, order_id=order_id, status=body.status, note=body.note, actor_id=admin.id
    )
    await db.commit()
    await _announce(realtime, order)
    return success_response(data={"order": await _reload(db, order_id)}, message="Order status updated")


@router.patch("/{order_id}/payment-status")
async def update_payment_status(
    order_id: str,
    body: PaymentStatusUpdateRequest,
    _: User = Depends(require_admin),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.update_payment_status(db, order_id=order_id, payment_status=body.payment_status)
    await db.commit()
    await _announce(realtime, order)
    return success_response(data={"order": await _reload(db, order_id)}, message="Payment status updated")


@router.post("/{order_id}/tracking")
async def add_tracking(
    order_id: str,
    body: TrackingRequest,
    admin: User = Depends(require_admin),
    realtime=Depends(get_realtime),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.add_tracking(
        db,
        order_id=order_id,
        tracking_number=body.tracking_number,
        shipping_method=body.shipping_method,
        actor_id=admin.id,
    )
    await db.commit()
    await _announce(realtime, order)
    return success_response(data={"order": await _reload(db, order_id)}, message="Tracking information added")


@router.delete("/{order_id}")
async def delete_order(order_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await order_service.delete_order(db, order_id=order_id)
    await db.commit()
    return success_response(message="Order deleted successfully")
