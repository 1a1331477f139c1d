"""
Tests for the contact inbox and store settings.
"""
import pytest
from fastapi import status

from domain.constants import ADMIN_ROOM
from main import app


INQUIRY = {
    "name": "Kato",
    "email": "kato@example.com",
    "subject": "Where is my parcel?",
    "inquiryType": "order",
    "message": "I ordered a mouse last week and it has not arrived yet.",
}


class FakeSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, frame):
        self.frames.append(frame)


class TestContact:

    @pytest.mark.unit
    def test_priority_follows_inquiry_type(self):
        from services.contact_service import priority_for

        assert priority_for("order") == "HIGH"
        assert priority_for("ORDER") == "HIGH"
        assert priority_for(None) == "LOW"
        assert priority_for("partnership") == "NORMAL"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_submit_notifies_admins(self, client, admin_headers, customer_headers):
        socket = FakeSocket()
        app.state.realtime.connect(socket, role="ADMIN")
        app.state.realtime.join(socket, ADMIN_ROOM)

        response = await client.post("/api/contact", json=INQUIRY)

        assert response.status_code == status.HTTP_201_CREATED
        message = response.json()["data"]["message"]
        assert message["priority"] == "HIGH"
        assert message["status"] == "NEW"
        assert socket.frames[0]["event"] == "new_notification"

        admin_feed = await client.get("/api/notifications", headers=admin_headers)
        assert admin_feed.json()["data"]["notifications"][0]["title"] == "New Inquiry: Where is my parcel?"

        customer_feed = await client.get("/api/notifications", headers=customer_headers)
        assert customer_feed.json()["data"]["notifications"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, client):
        response = await client.post("/api/contact", json={**INQUIRY, "email": "not-an-email"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "validation"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_workflow(self, client, admin_headers):
        created = await client.post("/api/contact", json=INQUIRY)
        message_id = created.json()["data"]["message"]["id"]

        opened = await client.get(f"/api/contact/{message_id}", headers=admin_headers)
        assert opened.json()["data"]["message"]["status"] == "IN_PROGRESS"

        empty = await client.post(f"/api/contact/{message_id}/respond", json={"response": "  "}, headers=admin_headers)
        assert empty.status_code == status.HTTP_400_BAD_REQUEST

        answered = await client.post(
            f"/api/contact/{message_id}/respond", json={"response": "It ships tomorrow."}, headers=admin_headers
        )
        assert answered.json()["data"]["message"]["status"] == "RESOLVED"
        assert answered.json()["data"]["message"]["respondedAt"] is not None

        stats = await client.get("/api/contact/stats", headers=admin_headers)
        data = stats.json()["data"]["stats"]
        assert data["total"] == 1
        assert data["resolved"] == 1
        assert data["byType"] == {"order": 1}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_inbox_is_admin_only(self, client, customer_headers):
        response = await client.get("/api/contact", headers=customer_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestSettings:

    @pytest.mark.unit
    def test_value_coercion(self):
        from services.setting_service import dump_value, parse_value

        assert parse_value("25000", "number") == 25000.0
        assert parse_value("abc", "number") is None
        assert parse_value("true", "boolean") is True
        assert parse_value('{"a": 1}', "json") == {"a": 1}
        assert dump_value(False) == "false"
        assert dump_value([1, 2]) == "[1, 2]"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_super_admin_writes_public_reads(self, client, super_admin_headers):
        saved = await client.put(
            "/api/settings/store_name", json={"value": "Nile Shop", "group": "store"}, headers=super_admin_headers
        )
        assert saved.status_code == status.HTTP_200_OK
        await client.put(
            "/api/settings/smtp_password", json={"value": "hunter2", "group": "email"}, headers=super_admin_headers
        )

        public = await client.get("/api/settings/public")
        settings = public.json()["data"]["settings"]
        assert settings == {"store_name": "Nile Shop"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_cannot_write(self, client, admin_headers):
        response = await client.put("/api/settings/store_name", json={"value": "Hijacked"}, headers=admin_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_bulk_and_grouped_reads(self, client, super_admin_headers):
        response = await client.post(
            "/api/settings/bulk",
            json={"settings": [
                {"key": "tax_rate", "value": 0.18, "type": "number", "group": "checkout"},
                {"key": "cod_enabled", "value": True, "type": "boolean", "group": "checkout"},
            ]},
            headers=super_admin_headers,
        )
        assert response.json()["message"] == "2 settings updated"

        group = await client.get("/api/settings/group/checkout", headers=super_admin_headers)
        assert group.json()["data"]["settings"] == {"cod_enabled": True, "tax_rate": 0.18}

        missing = await client.get("/api/settings/nope", headers=super_admin_headers)
        assert missing.status_code == status.HTTP_404_NOT_FOUND
