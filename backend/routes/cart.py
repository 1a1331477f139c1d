"""
Cart endpoints — every write answers with the refreshed cart.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from models import CartAddRequest, CartSyncRequest, CartUpdateRequest
from services import cart_service

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("")
async def get_cart(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return success_response(data=await cart_service.get_cart(db, user_id=user.id))


@router.post("")
async def add_to_cart(
    body: CartAddRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.add_item(db, user_id=user.id, product_id=body.product_id, quantity=body.quantity)
    await db.commit()
    return success_response(data=await cart_service.get_cart(db, user_id=user.id), message="Item added to cart")


@router.put("/{product_id}")
async def update_cart_item(
    product_id: str,
    body: CartUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.update_item(db, user_id=user.id, product_id=product_id, quantity=body.quantity)
    await db.commit()
    return success_response(data=await cart_service.get_cart(db, user_id=user.id), message="Cart updated")


@router.delete("/{product_id}")
async def remove_cart_item(
    product_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_item(db, user_id=user.id, product_id=product_id)
    await db.commit()
    return success_response(data=await cart_service.get_cart(db, user_id=user.id), message="Item removed from cart")


@router.delete("")
async def clear_cart(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await cart_service.clear_cart(db, user_id=user.id)
    await db.commit()
    return success_response(message="Cart cleared")


@router.post("/sync")
async def sync_cart(
    body: CartSyncRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Merge a guest cart kept by the client into the stored cart."""
    results = await cart_service.sync_cart(
        db, user_id=user.id, items=[line.model_dump() for line in body.items]
    )
    await db.commit()
    cart = await cart_service.get_cart(db, user_id=user.id)
    return success_response(data={**cart, "results": results}, message="Cart synced")
