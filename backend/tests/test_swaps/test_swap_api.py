"""Tests for the swap endpoints: status codes, plan gating, and the message thread."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers_for, create_service, create_user


@pytest_asyncio.fixture
async def setup(db_session: AsyncSession):
    alice = await create_user(db_session, name="Alice")
    bob = await create_user(db_session, name="Bob")
    guitar = await create_service(db_session, alice, "Guitar lessons")
    design = await create_service(db_session, bob, "Web design")
    return {
        "alice": auth_headers_for(alice),
        "bob": auth_headers_for(bob),
        "guitar": str(guitar.id),
        "design": str(design.id),
    }


async def _propose(client: AsyncClient, setup: dict) -> dict:
    response = await client.post(
        "/api/v1/swaps",
        json={"provider_service_id": setup["guitar"], "receiver_service_id": setup["design"]},
        headers=setup["alice"],
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestProposeEndpoint:
    async def test_propose(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        assert swap["status"] == "pending"
        assert swap["provider_service"] == "Guitar lessons"

    async def test_requires_auth(self, client: AsyncClient, setup: dict):
        response = await client.post(
            "/api/v1/swaps",
            json={"provider_service_id": setup["guitar"], "receiver_service_id": setup["design"]},
        )
        assert response.status_code == 401

    async def test_requires_active_plan(self, client: AsyncClient, db_session: AsyncSession, setup: dict):
        free_user = await create_user(db_session, name="Free", plan_id=None)
        offer = await create_service(db_session, free_user, "Dog walking")
        response = await client.post(
            "/api/v1/swaps",
            json={"provider_service_id": str(offer.id), "receiver_service_id": setup["design"]},
            headers=auth_headers_for(free_user),
        )
        assert response.status_code == 402
        assert response.json()["detail"]["upgrade_url"] == "/pricing"

    async def test_self_swap_is_bad_request(self, client: AsyncClient, db_session: AsyncSession, setup: dict):
        response = await client.post(
            "/api/v1/swaps",
            json={"provider_service_id": setup["design"], "receiver_service_id": setup["design"]},
            headers=setup["bob"],
        )
        assert response.status_code == 400

    async def test_unknown_service(self, client: AsyncClient, setup: dict):
        response = await client.post(
            "/api/v1/swaps",
            json={"provider_service_id": setup["guitar"], "receiver_service_id": str(uuid.uuid4())},
            headers=setup["alice"],
        )
        assert response.status_code == 404


class TestLifecycleEndpoints:
    async def test_full_lifecycle(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        swap_id = swap["id"]

        response = await client.post(f"/api/v1/swaps/{swap_id}/read", headers=setup["bob"])
        assert response.status_code == 200
        assert response.json()["read"] is True

        response = await client.post(f"/api/v1/swaps/{swap_id}/accept", headers=setup["bob"])
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

        response = await client.post(f"/api/v1/swaps/{swap_id}/complete", headers=setup["alice"])
        assert response.json()["status"] == "accepted"
        assert response.json()["provider_marked_complete"] is True

        response = await client.post(f"/api/v1/swaps/{swap_id}/complete", headers=setup["bob"])
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

        response = await client.get(f"/api/v1/swaps/{swap_id}/messages", headers=setup["alice"])
        texts = [m["text"] for m in response.json()]
        assert texts[0].startswith("I'd like to swap my")
        assert texts[-1] == "Both parties have marked the swap as complete!"

    async def test_wrong_party_is_forbidden(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        response = await client.post(f"/api/v1/swaps/{swap['id']}/accept", headers=setup["alice"])
        assert response.status_code == 403

    async def test_invalid_transition_is_conflict(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        await client.post(f"/api/v1/swaps/{swap['id']}/decline", headers=setup["bob"])
        response = await client.post(f"/api/v1/swaps/{swap['id']}/accept", headers=setup["bob"])
        assert response.status_code == 409

    async def test_complete_before_accept_is_conflict(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        response = await client.post(f"/api/v1/swaps/{swap['id']}/complete", headers=setup["alice"])
        assert response.status_code == 409

    async def test_unknown_swap(self, client: AsyncClient, setup: dict):
        response = await client.post(f"/api/v1/swaps/{uuid.uuid4()}/cancel", headers=setup["bob"])
        assert response.status_code == 404
        assert response.json()["detail"] == "Swap not found"

    async def test_unexpected_failure_is_generic_500(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        with patch(
            "app.services.swap_service.accept_swap",
            new_callable=AsyncMock,
            side_effect=RuntimeError("database exploded"),
        ):
            response = await client.post(f"/api/v1/swaps/{swap['id']}/accept", headers=setup["bob"])
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
        assert "database exploded" not in response.text


class TestQueryEndpoints:
    async def test_list_for_both_parties(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        for headers in (setup["alice"], setup["bob"]):
            response = await client.get("/api/v1/swaps?order=updated", headers=headers)
            assert response.status_code == 200
            data = response.json()
            assert data["total"] == 1
            assert data["items"][0]["id"] == swap["id"]

    async def test_invalid_status_filter(self, client: AsyncClient, setup: dict):
        response = await client.get("/api/v1/swaps?status=bogus", headers=setup["alice"])
        assert response.status_code == 422

    async def test_outsider_cannot_view(self, client: AsyncClient, db_session: AsyncSession, setup: dict):
        swap = await _propose(client, setup)
        carol = await create_user(db_session, name="Carol")
        response = await client.get(f"/api/v1/swaps/{swap['id']}", headers=auth_headers_for(carol))
        assert response.status_code == 403

    async def test_post_message(self, client: AsyncClient, setup: dict):
        swap = await _propose(client, setup)
        response = await client.post(
            f"/api/v1/swaps/{swap['id']}/messages",
            json={"text": "Saturday works for me"},
            headers=setup["bob"],
        )
        assert response.status_code == 201
        assert response.json()["sender_name"] == "Bob"

        response = await client.get("/api/v1/notifications", headers=setup["alice"])
        types = {n["type"] for n in response.json()["items"]}
        assert "message" in types
