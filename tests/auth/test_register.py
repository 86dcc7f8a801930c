"""
Tests for POST /api/v1/auth/register endpoint.

Registration creates a member account, returns the first API key and
sends the welcome notifications.
"""

import pytest
from httpx import AsyncClient

from posttrr.services import system_notifications

URL = "/api/v1/auth/register"


@pytest.fixture
def valid_registration_data() -> dict[str, str]:
    """Valid member registration payload."""
    return {
        "username": "newbuyer",
        "email": "NewBuyer@example.com",
        "displayName": "New Buyer",
        "userType": "buyer",
    }


class TestRegisterSuccess:
    """Happy path registration scenarios."""

    async def test_register_returns_201_with_api_key(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        response = await async_client.post(URL, json=valid_registration_data)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["apiKey"].startswith("pt_live_")
        assert data["username"] == "newbuyer"
        assert data["email"] == "newbuyer@example.com"
        assert data["userType"] == "buyer"
        assert data["roles"] == ["member"]

    async def test_api_key_works(self, async_client: AsyncClient, valid_registration_data: dict):
        response = await async_client.post(URL, json=valid_registration_data)
        api_key = response.json()["data"]["apiKey"]

        summary = await async_client.get("/api/v1/inbox/summary", headers={"X-API-Key": api_key})
        assert summary.status_code == 200

    async def test_welcome_notifications_are_sent(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        response = await async_client.post(URL, json=valid_registration_data)
        data = response.json()["data"]
        assert data["welcomeNotificationSent"] is True

        inbox = await async_client.get(
            "/api/v1/inbox/notifications", headers={"X-API-Key": data["apiKey"]}
        )
        items = inbox.json()["data"]["items"]
        assert {item["type"] for item in items} == {"welcome", "onboarding"}
        welcome = next(item for item in items if item["type"] == "welcome")
        assert "New Buyer" in welcome["message"]

    async def test_notification_failure_does_not_fail_registration(
        self, async_client: AsyncClient, valid_registration_data: dict, monkeypatch
    ):
        def broken(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(system_notifications, "_add_system_notification", broken)

        response = await async_client.post(URL, json=valid_registration_data)
        assert response.status_code == 201
        assert response.json()["data"]["welcomeNotificationSent"] is False


class TestRegisterValidation:
    async def test_duplicate_username_is_409(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        await async_client.post(URL, json=valid_registration_data)
        response = await async_client.post(
            URL, json={**valid_registration_data, "email": "other@example.com"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    async def test_duplicate_email_ignores_case(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        await async_client.post(URL, json=valid_registration_data)
        response = await async_client.post(
            URL,
            json={**valid_registration_data, "username": "someone", "email": "NEWBUYER@example.com"},
        )
        assert response.status_code == 409

    async def test_unknown_user_type_is_400(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        response = await async_client.post(
            URL, json={**valid_registration_data, "userType": "landlord"}
        )
        assert response.status_code == 400

    async def test_bad_username_is_400(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        response = await async_client.post(
            URL, json={**valid_registration_data, "username": "No Spaces"}
        )
        assert response.status_code == 400
        assert "Username must be 3-32 characters" in response.json()["error"]


class TestRegisterRateLimit:
    async def test_sixth_registration_in_an_hour_is_429(
        self, async_client: AsyncClient, valid_registration_data: dict
    ):
        for i in range(5):
            response = await async_client.post(
                URL,
                json={
                    **valid_registration_data,
                    "username": f"member_{i}",
                    "email": f"member_{i}@example.com",
                },
            )
            assert response.status_code == 201

        response = await async_client.post(
            URL, json={**valid_registration_data, "username": "member_5", "email": "m5@example.com"}
        )
        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
