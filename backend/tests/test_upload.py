"""
Tests for image uploads.
"""
import io

import pytest
from fastapi import UploadFile, status

from config import settings
from domain.errors import ValidationError
from services import upload_service

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
    return tmp_path


class TestUploadService:

    @pytest.mark.unit
    def test_check_image(self):
        assert upload_service.check_image(PNG_BYTES, "image/png") == ".png"

        with pytest.raises(ValidationError):
            upload_service.check_image(b"hello", "text/plain")
        with pytest.raises(ValidationError):
            upload_service.check_image(b"", "image/png")

    @pytest.mark.unit
    def test_oversized_image(self, monkeypatch):
        monkeypatch.setattr(settings, "upload_max_bytes", 10)
        with pytest.raises(ValidationError):
            upload_service.check_image(PNG_BYTES, "image/png")

    @pytest.mark.unit
    @pytest.mark.parametrize("name", ["../secrets.txt", ".hidden", "nested/file.png", ""])
    def test_resolve_rejects_escapes(self, upload_dir, name):
        with pytest.raises(ValidationError):
            upload_service.resolve_stored(name)


class TestUploadRoutes:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_upload_then_delete(self, client, admin_headers, upload_dir):
        response = await client.post(
            "/api/upload/image",
            files={"image": ("mouse.png", PNG_BYTES, "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["url"].endswith(f"/uploads/{data['filename']}")
        assert (upload_dir / data["filename"]).read_bytes() == PNG_BYTES

        deleted = await client.delete(f"/api/upload/{data['filename']}", headers=admin_headers)
        assert deleted.status_code == status.HTTP_200_OK
        assert not (upload_dir / data["filename"]).exists()

        again = await client.delete(f"/api/upload/{data['filename']}", headers=admin_headers)
        assert again.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_batch_is_rejected_as_a_whole(self, client, admin_headers, upload_dir):
        response = await client.post(
            "/api/upload/images",
            files=[
                ("images", ("a.png", PNG_BYTES, "image/png")),
                ("images", ("notes.txt", b"plain text", "text/plain")),
            ],
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_cannot_delete(self, client, customer_headers, upload_dir):
        response = await client.delete("/api/upload/anything.png", headers=customer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_oversized_upload_rejected(self, client, admin_headers, upload_dir, monkeypatch):
        monkeypatch.setattr(settings, "upload_max_bytes", 16)

        response = await client.post(
            "/api/upload/image",
            files={"image": ("huge.png", PNG_BYTES, "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert list(upload_dir.iterdir()) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_read_stops_past_the_cap(self, monkeypatch):
        from routes.upload import _read

        monkeypatch.setattr(settings, "upload_max_bytes", 16)
        upload = UploadFile(file=io.BytesIO(PNG_BYTES), filename="huge.png")

        assert len(await _read(upload)) == 17
