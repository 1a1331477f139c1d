"""
Store settings endpoints.

Reads are open to admins (public subset to everyone); writes need a
super admin.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_admin, require_super_admin
from domain.responses import success_response
from models import SettingBulkRequest, SettingUpsertRequest
from services import setting_service

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/public")
async def public_settings(db: AsyncSession = Depends(get_db)):
    return success_response(data={"settings": await setting_service.public_settings(db)})


@router.get("")
async def all_settings(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"settings": await setting_service.all_settings_grouped(db)})


@router.get("/group/{group}")
async def settings_by_group(group: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return success_response(data={"settings": await setting_service.settings_by_group(db, group)})


@router.get("/{key}")
async def get_setting(key: str, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    setting = await setting_service.get_setting(db, key)
    return success_response(data={"setting": setting_service.serialize_setting(setting)})


@router.put("/{key}")
async def upsert_setting(
    key: str,
    body: SettingUpsertRequest,
    _: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    setting = await setting_service.upsert_setting(
        db,
        key=key,
        value=body.value,
        type=body.type,
        group=body.group,
        description=body.description,
    )
    await db.commit()
    return success_response(data={"setting": setting_service.serialize_setting(setting)}, message="Setting saved")


@router.post("/bulk")
async def bulk_upsert(
    body: SettingBulkRequest,
    _: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    results = await setting_service.bulk_upsert(db, items=[item.model_dump() for item in body.settings])
    await db.commit()
    return success_response(data={"settings": results}, message=f"{len(results)} settings updated")
