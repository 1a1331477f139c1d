"""
User endpoints — own addresses plus admin account management.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_current_user, pagination_params, require_admin
from domain.responses import paginated_response, success_response
from models import AddressRequest, AddressUpdateRequest, AdminUserUpdateRequest
from services import auth_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])


# ── Addresses ───────────────────────────────────────────────────────

@router.get("/addresses")
async def list_addresses(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    addresses = await user_service.list_addresses(db, user_id=user.id)
    return success_response(data={"addresses": [user_service.serialize_address(a) for a in addresses]})


@router.post("/addresses", status_code=status.HTTP_201_CREATED)
async def add_address(
    body: AddressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    address = await user_service.add_address(db, user_id=user.id, **body.model_dump())
    await db.commit()
    return success_response(data={"address": user_service.serialize_address(address)})


@router.put("/addresses/{address_id}")
async def update_address(
    address_id: str,
    body: AddressUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    address = await user_service.update_address(
        db, user_id=user.id, address_id=address_id, **body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return success_response(data={"address": user_service.serialize_address(address)})


@router.delete("/addresses/{address_id}")
async def delete_address(
    address_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_address(db, user_id=user.id, address_id=address_id)
    await db.commit()
    return success_response(message="Address deleted")


# ── Admin ───────────────────────────────────────────────────────────

@router.get("/stats")
async def user_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"stats": await user_service.user_stats(db)})


@router.get("")
async def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: Pagination = Depends(pagination_params),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_service.list_users(
        db,
        limit=page["limit"],
        offset=page["offset"],
        search=search,
        role=role,
        status=status_filter,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paginated_response("users", users, page=page["page"], limit=page["limit"], total=total)


@router.get("/{user_id}")
async def get_user(user_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"user": await user_service.get_user_detail(db, user_id)})


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    body: AdminUserUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, user_id=user_id, **body.model_dump(exclude_unset=True))
    await db.commit()
    return success_response(data={"user": auth_service.serialize_user(user)})


@router.patch("/{user_id}/status")
async def toggle_user_status(user_id: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    user = await user_service.toggle_user_status(db, user_id=user_id)
    await db.commit()
    state = "activated" if user.is_active else "deactivated"
    return success_response(data={"user": auth_service.serialize_user(user)}, message=f"User {state}")


@router.delete("/{user_id}")
async def delete_user(user_id: str, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await user_service.delete_user(db, user_id=user_id, acting_user_id=admin.id)
    await db.commit()
    return success_response(message="User deleted successfully")
