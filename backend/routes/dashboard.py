"""
Admin dashboard endpoints — read-only analytics.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import require_admin
from domain.responses import success_response
from services import dashboard_service

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin)])


@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_db)):
    return success_response(data={"stats": await dashboard_service.stats(db)})


@router.get("/revenue")
async def revenue_chart(period: str = "7days", db: AsyncSession = Depends(get_db)):
    """Paid revenue per day; period is one of 7days, 30days, 90days, 12months."""
    chart = await dashboard_service.revenue_chart(db, period=period)
    return success_response(data={"period": period, "chart": chart})


@router.get("/orders")
async def order_breakdown(db: AsyncSession = Depends(get_db)):
    return success_response(data=await dashboard_service.order_breakdown(db))


@router.get("/products/top")
async def top_products(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return success_response(data={"products": await dashboard_service.top_products(db, limit=limit)})


@router.get("/products/low-stock")
async def low_stock(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return success_response(data={"products": await dashboard_service.low_stock(db, limit=limit)})


@router.get("/customers")
async def customer_stats(db: AsyncSession = Depends(get_db)):
    return success_response(data=await dashboard_service.customer_stats(db))


@router.get("/recent-orders")
async def recent_orders(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return success_response(data={"orders": await dashboard_service.recent_orders(db, limit=limit)})


@router.get("/activity")
async def recent_activity(limit: int = Query(20, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return success_response(data={"activities": await dashboard_service.recent_activity(db, limit=limit)})
