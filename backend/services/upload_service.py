"""
Upload service — product/avatar images stored on local disk.

Files are written under settings.upload_dir with a random uuid name and
served by the StaticFiles mount at /uploads. Disk I/O runs in the shared
thread pool.
"""
import logging
import uuid
from pathlib import Path

from config import settings
from domain.constants import ALLOWED_IMAGE_TYPES
from domain.errors import NotFoundError, ValidationError
from services.async_executor import run_blocking

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads"


def upload_root() -> Path:
    return Path(settings.upload_dir).resolve()


def _write_sync(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _delete_sync(path: Path) -> bool:
    if not path.is_file():
        return False
    path.unlink()
    return True


def check_image(data: bytes, content_type: str | None) -> str:
    """Validate type and size; returns the file extension to use."""
    extension = ALLOWED_IMAGE_TYPES.get((content_type or "").lower())
    if not extension:
        raise ValidationError("Only image files (JPEG, PNG, GIF, WebP) are allowed")
    if len(data) == 0:
        raise ValidationError("Image file is empty")
    if len(data) > settings.upload_max_bytes:
        raise ValidationError(f"Image must be under {settings.upload_max_bytes // (1024 * 1024)} MB")
    return extension


async def save_image(data: bytes, *, content_type: str | None, base_url: str = "") -> dict:
    extension = check_image(data, content_type)
    filename = f"{uuid.uuid4()}{extension}"
    await run_blocking(_write_sync, upload_root() / filename, data)
    logger.info(f"Stored upload {filename} ({len(data)} bytes)")
    return {
        "filename": filename,
        "url": f"{base_url.rstrip('/')}{UPLOAD_URL_PREFIX}/{filename}",
        "size": len(data),
        "mimetype": content_type,
    }


def resolve_stored(filename: str) -> Path:
    """Map a client-supplied name to a path inside the upload dir."""
    root = upload_root()
    path = (root / filename).resolve()
    if path.parent != root or not filename or filename.startswith("."):
        raise ValidationError("Invalid file name")
    return path


async def delete_image(filename: str) -> None:
    path = resolve_stored(filename)
    if not await run_blocking(_delete_sync, path):
        raise NotFoundError("File", filename)
    logger.info(f"Deleted upload {filename}")
