"""Tests for billing API endpoints with mocked Stripe calls."""

import time
from unittest.mock import AsyncMock, patch

import pytest_asyncio
import stripe
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import Subscription
from conftest import StripeObj, auth_headers_for, create_user, make_stripe_sub

SVC = "app.services.subscription_service"
PERIOD_END = int(time.time()) + 7 * 86400


@pytest_asyncio.fixture
async def subscriber(db_session: AsyncSession):
    user = await create_user(db_session, name="Subscriber", plan_id=None, stripe_customer_id="cus_api")
    db_session.add(
        Subscription(
            id="sub_api",
            user_id=user.id,
            customer_id="cus_api",
            plan_id="pro",
            price_id="price_pro_month",
            interval="month",
            status="active",
            cancel_at_period_end=False,
            current_period_end=PERIOD_END,
        )
    )
    await db_session.flush()
    return user, auth_headers_for(user)


class TestPlansAndSubscriptions:
    async def test_list_plans_is_public(self, client: AsyncClient):
        response = await client.get("/api/v1/billing/plans")
        assert response.status_code == 200
        plans = {p["id"]: p for p in response.json()["plans"]}
        assert set(plans) == {"basic", "pro", "business", "verification"}
        assert plans["pro"]["price_monthly_cents"] == 1999
        assert plans["verification"]["is_addon"] is True

    async def test_subscriptions_with_flags(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        response = await client.get("/api/v1/billing/subscriptions", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["has_active_plan"] is True
        assert data["has_verification_badge"] is False
        assert data["main_plan_id"] == "pro"
        assert data["subscriptions"][0]["access"] == "active"
        assert data["subscriptions"][0]["is_placeholder"] is False

    async def test_subscriptions_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/v1/billing/subscriptions")
        assert response.status_code == 401


class TestSubscriptionInfo:
    async def test_returns_live_state_uncached(self, client: AsyncClient, db_session: AsyncSession, subscriber):
        _, headers = subscriber
        with (
            patch(f"{SVC}.retrieve_subscription", new_callable=AsyncMock,
                  return_value=make_stripe_sub(sub_id="sub_api", customer="cus_api",
                                               cancel_at_period_end=True, period_end=PERIOD_END)),
            patch(f"{SVC}.list_invoices", new_callable=AsyncMock, return_value=[]),
        ):
            response = await client.post(
                "/api/v1/billing/subscription-info",
                json={"subscriptionId": "sub_api"},
                headers=headers,
            )

        assert response.status_code == 200
        assert response.headers["cache-control"].startswith("no-store")
        data = response.json()
        assert data["subscription"]["cancel_at_period_end"] is True
        assert data["subscription"]["access"] == "grace_period"
        assert data["invoices"] == []

        mirror = await db_session.get(Subscription, "sub_api")
        assert mirror.cancel_at_period_end is True

    async def test_missing_ids(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        response = await client.post("/api/v1/billing/subscription-info", json={}, headers=headers)
        assert response.status_code == 400

    async def test_stripe_error_is_bad_gateway(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        with patch(f"{SVC}.retrieve_subscription", new_callable=AsyncMock,
                   side_effect=stripe.APIConnectionError("Stripe unreachable")):
            response = await client.post(
                "/api/v1/billing/subscription-info",
                json={"subscriptionId": "sub_api"},
                headers=headers,
            )
        assert response.status_code == 502
        assert "Stripe unreachable" in response.json()["detail"]


class TestCancelAndResume:
    async def test_cancel(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        with (
            patch(f"{SVC}.retrieve_subscription", new_callable=AsyncMock,
                  return_value=make_stripe_sub(sub_id="sub_api", customer="cus_api", period_end=PERIOD_END)),
            patch(f"{SVC}.set_cancel_at_period_end", new_callable=AsyncMock),
        ):
            response = await client.post(
                "/api/v1/billing/cancel", json={"subscriptionId": "sub_api"}, headers=headers
            )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Subscription will be canceled at the end of the billing period.",
        }

    async def test_cancel_someone_elses_subscription(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        with (
            patch(f"{SVC}.retrieve_subscription", new_callable=AsyncMock,
                  return_value=make_stripe_sub(sub_id="sub_other", customer="cus_other")),
            patch(f"{SVC}.set_cancel_at_period_end", new_callable=AsyncMock) as mock_update,
        ):
            response = await client.post(
                "/api/v1/billing/cancel", json={"subscriptionId": "sub_other"}, headers=headers
            )
        assert response.status_code == 403
        mock_update.assert_not_awaited()

    async def test_cancel_invalid_id(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        response = await client.post("/api/v1/billing/cancel", json={"subscriptionId": "bogus"}, headers=headers)
        assert response.status_code == 400

    async def test_resume(self, client: AsyncClient, subscriber):
        user, headers = subscriber
        with (
            patch(f"{SVC}.retrieve_subscription", new_callable=AsyncMock,
                  return_value=make_stripe_sub(sub_id="sub_api", customer="cus_api", cancel_at_period_end=True)),
            patch(f"{SVC}.set_cancel_at_period_end", new_callable=AsyncMock,
                  return_value=make_stripe_sub(sub_id="sub_api", customer="cus_api")),
        ):
            response = await client.post(
                "/api/v1/billing/resume",
                json={"subscriptionId": "sub_api", "userId": str(user.id)},
                headers=headers,
            )
        assert response.status_code == 200
        assert response.json()["message"] == "Subscription successfully resumed"

    async def test_resume_for_another_user(self, client: AsyncClient, db_session: AsyncSession, subscriber):
        _, headers = subscriber
        other = await create_user(db_session, plan_id=None)
        response = await client.post(
            "/api/v1/billing/resume",
            json={"subscriptionId": "sub_api", "userId": str(other.id)},
            headers=headers,
        )
        assert response.status_code == 403


class TestCheckoutAndPortal:
    async def test_checkout(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        with patch(
            f"{SVC}.create_checkout_session",
            new_callable=AsyncMock,
            return_value=StripeObj(id="cs_test_123", url="https://checkout.stripe.com/test_session"),
        ):
            response = await client.post(
                "/api/v1/billing/checkout",
                json={"plan": "business", "interval": "year"},
                headers=headers,
            )
        assert response.status_code == 200
        assert response.json() == {
            "checkout_url": "https://checkout.stripe.com/test_session",
            "session_id": "cs_test_123",
        }

    async def test_checkout_invalid_plan(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        response = await client.post("/api/v1/billing/checkout", json={"plan": "premium"}, headers=headers)
        assert response.status_code == 400

    async def test_checkout_invalid_interval(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        response = await client.post(
            "/api/v1/billing/checkout", json={"plan": "pro", "interval": "week"}, headers=headers
        )
        assert response.status_code == 422

    async def test_portal(self, client: AsyncClient, subscriber):
        _, headers = subscriber
        with patch(f"{SVC}.create_portal_session", new_callable=AsyncMock,
                   return_value=StripeObj(url="https://billing.stripe.com/p/session")):
            response = await client.post("/api/v1/billing/portal", json={}, headers=headers)
        assert response.status_code == 200
        assert response.json()["portal_url"] == "https://billing.stripe.com/p/session"

    async def test_portal_without_customer(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, plan_id=None)
        response = await client.post("/api/v1/billing/portal", json={}, headers=auth_headers_for(user))
        assert response.status_code == 400
