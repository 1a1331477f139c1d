"""
Setting service — typed key/value store configuration.

Values are stored as text and parsed on the way out according to the
row's `type` (string | number | boolean | json).
"""
import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Setting
from domain.constants import PUBLIC_SETTING_KEYS
from domain.enums import SettingType
from domain.errors import NotFoundError, ValidationError
from domain.responses import iso

logger = logging.getLogger(__name__)


def parse_value(value: str, type_: str) -> Any:
    if type_ == SettingType.NUMBER.value:
        try:
            return float(value)
        except ValueError:
            return None
    if type_ == SettingType.BOOLEAN.value:
        return value == "true"
    if type_ == SettingType.JSON.value:
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def dump_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def serialize_setting(s: Setting) -> dict:
    return {
        "id": s.id,
        "key": s.key,
        "value": parse_value(s.value, s.type),
        "type": s.type,
        "group": s.group,
        "description": s.description,
        "updatedAt": iso(s.updated_at),
    }


async def public_settings(db: AsyncSession) -> dict[str, Any]:
    res = await db.execute(select(Setting).where(Setting.key.in_(PUBLIC_SETTING_KEYS)))
    return {s.key: parse_value(s.value, s.type) for s in res.scalars().all()}


async def all_settings_grouped(db: AsyncSession) -> dict[str, list[dict]]:
    res = await db.execute(select(Setting).order_by(Setting.group.asc(), Setting.key.asc()))
    grouped: dict[str, list[dict]] = {}
    for s in res.scalars().all():
        grouped.setdefault(s.group, []).append(serialize_setting(s))
    return grouped


async def settings_by_group(db: AsyncSession, group: str) -> dict[str, Any]:
    res = await db.execute(select(Setting).where(Setting.group == group).order_by(Setting.key.asc()))
    return {s.key: parse_value(s.value, s.type) for s in res.scalars().all()}


async def get_setting(db: AsyncSession, key: str) -> Setting:
    setting = (await db.execute(select(Setting).where(Setting.key == key))).scalar_one_or_none()
    if not setting:
        raise NotFoundError("Setting", key)
    return setting


async def upsert_setting(
    db: AsyncSession,
    *,
    key: str,
    value: Any,
    type: str | None = None,
    group: str | None = None,
    description: str | None = None,
) -> Setting:
    if type is not None and type not in {t.value for t in SettingType}:
        raise ValidationError(f"Unknown setting type '{type}'", field="type")

    setting = (await db.execute(select(Setting).where(Setting.key == key))).scalar_one_or_none()
    if setting is None:
        setting = Setting(
            key=key,
            value=dump_value(value),
            type=type or SettingType.STRING.value,
            group=group or "general",
            description=description,
        )
        db.add(setting)
    else:
        setting.value = dump_value(value)
        if type:
            setting.type = type
        if group:
            setting.group = group
        if description is not None:
            setting.description = description
    await db.flush()
    return setting


async def bulk_upsert(db: AsyncSession, *, items: list[dict]) -> list[dict]:
    results = []
    for item in items:
        setting = await upsert_setting(
            db,
            key=item["key"],
            value=item["value"],
            type=item.get("type"),
            group=item.get("group"),
        )
        results.append({"key": setting.key, "value": parse_value(setting.value, setting.type)})
    logger.info(f"Bulk-updated {len(results)} settings")
    return results
