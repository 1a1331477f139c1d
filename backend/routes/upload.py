"""
Image upload endpoints (multipart/form-data).

Stored files are served by the StaticFiles mount at /uploads.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, File, Request, UploadFile

from config import settings
from db_models import User
from deps import get_current_user, require_admin
from domain.errors import ValidationError
from domain.responses import success_response
from services import upload_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/upload", tags=["upload"])


async def _read(upload: UploadFile) -> bytes:
    # One byte past the cap is enough for check_image to reject the file
    return await upload.read(settings.upload_max_bytes + 1)


async def _store(request: Request, upload: UploadFile) -> dict:
    data = await _read(upload)
    return await upload_service.save_image(
        data, content_type=upload.content_type, base_url=str(request.base_url)
    )


@router.post("/image")
async def upload_image(
    request: Request,
    image: UploadFile = File(...),
    _: User = Depends(get_current_user),
):
    stored = await _store(request, image)
    return success_response(data=stored, message="Image uploaded successfully")


@router.post("/images")
async def upload_images(
    request: Request,
    images: List[UploadFile] = File(...),
    _: User = Depends(require_admin),
):
    if len(images) > settings.upload_max_files:
        raise ValidationError(f"At most {settings.upload_max_files} images per upload")
    # Validate the whole batch before writing anything
    payloads = []
    for upload in images:
        data = await _read(upload)
        upload_service.check_image(data, upload.content_type)
        payloads.append((data, upload.content_type))

    stored = [
        await upload_service.save_image(data, content_type=content_type, base_url=str(request.base_url))
        for data, content_type in payloads
    ]
    return success_response(data={"images": stored}, message=f"{len(stored)} images uploaded successfully")


@router.delete("/{filename}")
async def delete_image(filename: str, _: User = Depends(require_admin)):
    await upload_service.delete_image(filename)
    return success_response(message="Image deleted successfully")
