"""Tests for the auth endpoints and the bearer-token dependencies."""

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_access_token, create_token_pair
from app.models.user import User
from conftest import auth_headers_for, create_service, create_user


class TestRegisterAndLogin:
    async def test_register_returns_user_and_tokens(self, client: AsyncClient):
        unique = uuid.uuid4().hex[:8]
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": f"new-{unique}@test.com", "password": "s3cretpass", "name": "Newbie"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["name"] == "Newbie"
        assert data["user"]["is_verified"] is False
        assert data["tokens"]["token_type"] == "bearer"

    async def test_register_duplicate_email(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": test_user.email, "password": "s3cretpass", "name": "Dup"},
        )
        assert response.status_code == 409

    async def test_login_success(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "testpass123"},
        )
        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(test_user.id)

    async def test_login_wrong_password(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "wrong-password"},
        )
        assert response.status_code == 401

    async def test_login_inactive_account(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, is_active=False)
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "testpass123"},
        )
        assert response.status_code == 403


class TestRefresh:
    async def test_refresh_issues_new_pair(self, client: AsyncClient, test_user: User):
        tokens = create_token_pair(str(test_user.id))
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert "access_token" in response.json()

    async def test_access_token_rejected(self, client: AsyncClient, test_user: User):
        tokens = create_token_pair(str(test_user.id))
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert response.status_code == 401


class TestCurrentUser:
    """get_current_user, via the /me endpoint."""

    async def test_me(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.get("/api/v1/auth/me", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == test_user.email
        assert data["has_active_plan"] is True
        assert data["main_plan_id"] == "pro"
        assert data["service_count"] == 0
        assert data["verification_badge"] is None

    async def test_me_shows_badge_and_listings(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, name="Verified", plan_id=None, stripe_customer_id="cus_badge")
        user.verification_badge = {
            "active": True,
            "subscription_id": "sub_badge",
            "price_id": "price_verification_year",
            "interval": "year",
            "current_period_end": 1_900_000_000,
            "status": "active",
        }
        await create_service(db_session, user, "Bike repair")
        await db_session.flush()

        response = await client.get("/api/v1/auth/me", headers=auth_headers_for(user))
        data = response.json()
        assert data["is_verified"] is True
        assert data["verification_badge"]["interval"] == "year"
        assert data["stripe_customer_id"] == "cus_badge"
        assert data["has_active_plan"] is False
        assert data["service_count"] == 1

    async def test_missing_header(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing authorization header"

    async def test_expired_token(self, client: AsyncClient, test_user: User):
        token = create_access_token({"sub": str(test_user.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"

    async def test_unknown_user(self, client: AsyncClient):
        token = create_access_token({"sub": str(uuid.uuid4())})
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_user(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, is_active=False)
        response = await client.get("/api/v1/auth/me", headers=auth_headers_for(user))
        assert response.status_code == 403
        assert response.json()["detail"] == "Account is inactive"


class TestPortalFallback:
    """Billing actions answer auth failures with a pointer to the Stripe portal."""

    async def test_resume_with_bad_token_suggests_portal(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/billing/resume",
            json={"subscriptionId": "sub_123", "userId": str(uuid.uuid4())},
            headers={"Authorization": "Bearer not.a.valid.jwt"},
        )
        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["message"].startswith("Invalid or expired auth token")
        assert "Stripe Customer Portal" in detail["suggestion"]

    async def test_resume_without_token_suggests_portal(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/billing/resume",
            json={"subscriptionId": "sub_123", "userId": str(uuid.uuid4())},
        )
        assert response.status_code == 401
        assert "Missing authorization header" in response.json()["detail"]["message"]

    async def test_resume_for_inactive_account_suggests_portal(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        user = await create_user(db_session, is_active=False)
        response = await client.post(
            "/api/v1/billing/resume",
            json={"subscriptionId": "sub_123", "userId": str(user.id)},
            headers=auth_headers_for(user),
        )
        assert response.status_code == 401
        assert "User account is inactive" in response.json()["detail"]["message"]
