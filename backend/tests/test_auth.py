"""
Tests for authentication: registration, login, token handling and
profile updates.
"""
import pytest
from fastapi import status
from sqlalchemy import select

from db_models import Notification, User
from middleware.auth import decode_access_token, extract_token, issue_access_token


REGISTRATION = {
    "email": "New.Shopper@Example.com",
    "password": "secret123",
    "firstName": "Nia",
    "lastName": "Shopper",
}


class TestTokens:

    @pytest.mark.unit
    def test_issue_access_token(self):
        """JWT token should carry the user id and role."""
        token = issue_access_token(user_id="user-1", role="CUSTOMER")

        payload = decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["role"] == "CUSTOMER"
        assert "exp" in payload
        assert "iat" in payload

    @pytest.mark.unit
    def test_header_wins_over_cookie(self):
        assert extract_token("Bearer header-token", "cookie-token") == "header-token"
        assert extract_token(None, "cookie-token") == "cookie-token"
        assert extract_token("Basic abc", None) is None


class TestRegisterAndLogin:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_register_creates_customer_and_welcome(self, client, db_session):
        response = await client.post("/api/auth/register", json=REGISTRATION)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()["data"]
        assert data["user"]["email"] == "new.shopper@example.com"
        assert data["user"]["role"] == "CUSTOMER"
        assert "password" not in data["user"]
        assert data["token"]
        assert "token" in response.cookies

        user = (await db_session.execute(select(User).where(User.email == "new.shopper@example.com"))).scalar_one()
        welcome = (await db_session.execute(select(Notification).where(Notification.user_id == user.id))).scalar_one()
        assert welcome.title.startswith("Welcome to")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, client):
        await client.post("/api/auth/register", json=REGISTRATION)
        response = await client.post("/api/auth/register", json=REGISTRATION)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Email already registered"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_short_password_fails_validation(self, client):
        response = await client.post("/api/auth/register", json={**REGISTRATION, "password": "123"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["code"] == "validation"
        assert body["details"]["errors"][0]["field"] == "password"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_login_with_valid_credentials(self, client, customer):
        response = await client.post("/api/auth/login", json={"email": "JANE@example.com", "password": "password123"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["user"]["id"] == customer.id

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_login_with_wrong_password(self, client, customer):
        response = await client.post("/api/auth/login", json={"email": customer.email, "password": "wrong-pass"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {
            "success": False,
            "message": "Invalid email or password",
            "code": "unauthorized",
        }

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_deactivated_account_cannot_login(self, client, db_session, customer):
        customer.is_active = False
        await db_session.commit()

        response = await client.post("/api/auth/login", json={"email": customer.email, "password": "password123"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestSession:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_me_requires_token(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["success"] is False

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_me_with_bearer(self, client, customer, customer_headers):
        response = await client.get("/api/auth/me", headers=customer_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["user"]["firstName"] == "Jane"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self, client):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["message"] == "Invalid token. Please log in again."

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_password(self, client, customer, customer_headers):
        response = await client.patch(
            "/api/auth/update-password",
            json={"currentPassword": "password123", "newPassword": "brand-new-pass"},
            headers=customer_headers,
        )
        assert response.status_code == status.HTTP_200_OK

        login = await client.post("/api/auth/login", json={"email": customer.email, "password": "brand-new-pass"})
        assert login.status_code == status.HTTP_200_OK

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_password_needs_current(self, client, customer_headers):
        response = await client.patch(
            "/api/auth/update-password",
            json={"currentPassword": "nope", "newPassword": "brand-new-pass"},
            headers=customer_headers,
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_me(self, client, customer_headers):
        response = await client.patch(
            "/api/auth/update-me", json={"phone": "+256711111111"}, headers=customer_headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["user"]["phone"] == "+256711111111"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_reset_password_not_available(self, client):
        response = await client.post("/api/auth/reset-password", json={"token": "t", "password": "secret123"})
        assert response.status_code == status.HTTP_501_NOT_IMPLEMENTED
