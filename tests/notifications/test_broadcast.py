"""
Tests for the admin broadcast endpoints under /api/v1/admin/notifications.
"""

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.database import utcnow
from posttrr.models.activity import ActivityLog
from posttrr.models.notification import Notification
from posttrr.models.user_notification import UserNotification
from posttrr.services import dispatch

URL = "/api/v1/admin/notifications"


def payload(**overrides) -> dict:
    body = {"title": "Open house", "message": "This Sunday at 11", "type": "both", "audience": "all"}
    body.update(overrides)
    return body


async def count(db: AsyncSession, column, *where) -> int:
    result = await db.execute(select(func.count(column)).where(*where))
    return result.scalar() or 0


class TestSendNotification:
    """POST /api/v1/admin/notifications."""

    async def test_send_to_all_delivers_to_every_member(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Notification sent to 3 recipients"
        assert body["data"]["recipientCount"] == 3
        assert body["data"]["status"] == "sent"

        assert sorted(channels["email"].sent) == sorted(m["email"] for m in members.values())
        assert len(channels["push"].sent) == 3

    async def test_staff_accounts_are_not_recipients(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        await async_client.post(URL, json=payload(), headers=auth_headers(admin_user["api_key"]))
        assert admin_user["email"] not in channels["email"].sent

    async def test_delivery_counts_and_metadata(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
    ):
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        notification_id = response.json()["data"]["notificationId"]

        detail = await async_client.get(
            f"{URL}/{notification_id}", headers=auth_headers(admin_user["api_key"])
        )
        notification = detail.json()["data"]["notification"]
        assert notification["deliveredCount"] == 3
        assert notification["recipientCount"] == 3
        assert notification["createdBy"] == str(admin_user["id"])
        assert notification["metadata"] == {
            "emailsSent": 3,
            "pushNotificationsSent": 3,
            "failedDeliveries": 0,
            "errorDetails": [],
        }
        assert await count(
            db_session,
            UserNotification.id,
            UserNotification.notification_id == uuid.UUID(notification_id),
        ) == 3

    async def test_email_only_channel(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        response = await async_client.post(
            URL, json=payload(type="email"), headers=auth_headers(admin_user["api_key"])
        )
        assert response.json()["data"]["status"] == "sent"
        assert len(channels["email"].sent) == 3
        assert channels["push"].sent == []

    async def test_audience_maps_to_user_type(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        response = await async_client.post(
            URL, json=payload(audience="sellers"), headers=auth_headers(admin_user["api_key"])
        )
        assert response.json()["data"]["recipientCount"] == 1
        assert channels["email"].sent == [members["seller"]["email"]]

    async def test_unknown_audience_falls_back_to_all(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.post(
            URL, json=payload(audience="everyone"), headers=auth_headers(admin_user["api_key"])
        )
        assert response.json()["data"]["recipientCount"] == 3

    async def test_specific_users(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        ids = [str(members["buyer"]["id"]), str(members["agent"]["id"])]
        response = await async_client.post(
            URL,
            json=payload(audience="specific", specificUsers=ids),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert response.json()["data"]["recipientCount"] == 2
        assert sorted(channels["email"].sent) == sorted(
            [members["buyer"]["email"], members["agent"]["email"]]
        )

        detail = await async_client.get(
            f"{URL}/{response.json()['data']['notificationId']}",
            headers=auth_headers(admin_user["api_key"]),
        )
        assert detail.json()["data"]["notification"]["specificUsers"] == ids

    async def test_specific_without_ids_uses_all(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.post(
            URL,
            json=payload(audience="specific", specificUsers=[]),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert response.json()["data"]["recipientCount"] == 3

    async def test_malformed_specific_id_is_400(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.post(
            URL,
            json=payload(audience="specific", specificUsers=["not-an-id"]),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid user ID: not-an-id"

    async def test_no_recipients_is_400_and_nothing_stored(
        self, async_client: AsyncClient, db_session: AsyncSession, admin_user: dict, auth_headers
    ):
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 400
        assert response.json()["error"] == "No recipients found for the selected audience"
        assert await count(db_session, Notification.id) == 0

    async def test_missing_title_or_message_is_400(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        for body in (payload(title=""), payload(message=None)):
            response = await async_client.post(
                URL, json=body, headers=auth_headers(admin_user["api_key"])
            )
            assert response.status_code == 400
            assert response.json()["error"] == "Title and message are required"

    async def test_one_failed_recipient_keeps_status_sent(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        channels["email"].fail_for = {members["buyer"]["email"]}
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        assert response.json()["data"]["status"] == "sent"

        detail = await async_client.get(
            f"{URL}/{response.json()['data']['notificationId']}",
            headers=auth_headers(admin_user["api_key"]),
        )
        data = detail.json()["data"]
        assert data["notification"]["deliveredCount"] == 2
        meta = data["notification"]["metadata"]
        assert meta["failedDeliveries"] == 1
        assert meta["emailsSent"] == 2
        assert meta["errorDetails"][0].startswith(
            f"Failed to send to {members['buyer']['email']}"
        )

        failed = [d for d in data["deliveryDetails"] if d["status"] == "failed"]
        assert len(failed) == 1
        assert failed[0]["userId"] == str(members["buyer"]["id"])
        assert failed[0]["recipientInfo"]["email"] == members["buyer"]["email"]

    async def test_every_recipient_failing_marks_failed(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        channels["push"].fail_for = {m["email"] for m in members.values()}
        response = await async_client.post(
            URL, json=payload(type="push"), headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "failed"

        detail = await async_client.get(
            f"{URL}/{response.json()['data']['notificationId']}",
            headers=auth_headers(admin_user["api_key"]),
        )
        notification = detail.json()["data"]["notification"]
        assert notification["deliveredCount"] == 0
        assert notification["metadata"]["failedDeliveries"] == 3

    async def test_error_outside_a_recipient_fails_whole_send(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
        monkeypatch,
    ):
        def broken(user):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(dispatch, "recipient_info", broken)

        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "failed"

        detail = await async_client.get(
            f"{URL}/{response.json()['data']['notificationId']}",
            headers=auth_headers(admin_user["api_key"]),
        )
        notification = detail.json()["data"]["notification"]
        assert notification["status"] == "failed"
        assert notification["deliveredCount"] == 0
        assert notification["metadata"] == {
            "emailsSent": 0,
            "pushNotificationsSent": 0,
            "failedDeliveries": 3,
            "errorDetails": ["Sending failed: store unavailable"],
        }
        assert detail.json()["data"]["deliveryDetails"] == []
        assert await count(db_session, UserNotification.id) == 0

    async def test_specific_users_skip_staff(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers, channels
    ):
        ids = [str(admin_user["id"]), str(members["buyer"]["id"])]
        response = await async_client.post(
            URL,
            json=payload(audience="specific", specificUsers=ids),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert response.json()["data"]["recipientCount"] == 1
        assert channels["email"].sent == [members["buyer"]["email"]]

        only_staff = await async_client.post(
            URL,
            json=payload(audience="specific", specificUsers=[str(admin_user["id"])]),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert only_staff.status_code == 400

    async def test_long_unknown_audience_falls_back_to_all(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.post(
            URL,
            json=payload(audience="everyone-in-the-city"),
            headers=auth_headers(admin_user["api_key"]),
        )
        assert response.status_code == 200
        assert response.json()["data"]["recipientCount"] == 3

        detail = await async_client.get(
            f"{URL}/{response.json()['data']['notificationId']}",
            headers=auth_headers(admin_user["api_key"]),
        )
        assert detail.json()["data"]["notification"]["audience"] == "everyone-in-the-city"

    async def test_oversized_audience_is_400(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.post(
            URL, json=payload(audience="x" * 65), headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_scheduled_send_is_not_delivered_yet(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
        channels,
    ):
        when = (utcnow() + timedelta(hours=2)).isoformat()
        response = await async_client.post(
            URL, json=payload(scheduledTime=when), headers=auth_headers(admin_user["api_key"])
        )
        body = response.json()
        assert body["message"] == "Notification scheduled for 3 recipients"
        assert body["data"]["status"] == "scheduled"
        assert channels["email"].sent == []
        assert await count(db_session, UserNotification.id) == 0

    async def test_send_is_logged_in_activity_log(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
    ):
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(admin_user["api_key"])
        )
        notification_id = response.json()["data"]["notificationId"]
        assert await count(
            db_session,
            ActivityLog.id,
            ActivityLog.resource == "notification",
            ActivityLog.resource_id == notification_id,
            ActivityLog.action == "create",
        ) == 1

    async def test_requires_admin(self, async_client: AsyncClient, seller: dict, auth_headers):
        response = await async_client.post(
            URL, json=payload(), headers=auth_headers(seller["api_key"])
        )
        assert response.status_code == 403


class TestIdempotentSend:
    """Idempotency-Key on POST /api/v1/admin/notifications."""

    async def test_retry_replays_first_response(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
        channels,
    ):
        headers = {**auth_headers(admin_user["api_key"]), "Idempotency-Key": "broadcast-1"}
        first = await async_client.post(URL, json=payload(), headers=headers)
        second = await async_client.post(URL, json=payload(), headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == first.json()
        assert await count(db_session, Notification.id) == 1
        assert len(channels["email"].sent) == 3

    async def test_reused_key_with_other_body_is_409(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        headers = {**auth_headers(admin_user["api_key"]), "Idempotency-Key": "broadcast-2"}
        await async_client.post(URL, json=payload(), headers=headers)
        response = await async_client.post(URL, json=payload(title="Other"), headers=headers)
        assert response.status_code == 409
        assert response.json()["code"] == "IDEMPOTENCY_CONFLICT"

    async def test_failed_attempt_can_be_retried(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        auth_headers,
        buyer: dict,
    ):
        headers = {**auth_headers(admin_user["api_key"]), "Idempotency-Key": "broadcast-3"}
        first = await async_client.post(URL, json=payload(audience="sellers"), headers=headers)
        assert first.status_code == 400

        retry = await async_client.post(URL, json=payload(audience="sellers"), headers=headers)
        assert retry.status_code == 400
        assert retry.json()["error"] == "No recipients found for the selected audience"


class TestListNotifications:
    """GET /api/v1/admin/notifications."""

    async def _send(self, client: AsyncClient, headers: dict, **overrides) -> None:
        response = await client.post(URL, json=payload(**overrides), headers=headers)
        assert response.status_code == 200

    async def test_pagination(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        headers = auth_headers(admin_user["api_key"])
        for i in range(3):
            await self._send(async_client, headers, title=f"Notice {i}")

        response = await async_client.get(URL, params={"page": 1, "limit": 2}, headers=headers)
        data = response.json()["data"]
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert [n["title"] for n in data["notifications"]] == ["Notice 2", "Notice 1"]

        second = await async_client.get(URL, params={"page": 2, "limit": 2}, headers=headers)
        assert [n["title"] for n in second.json()["data"]["notifications"]] == ["Notice 0"]

    async def test_filters(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        headers = auth_headers(admin_user["api_key"])
        await self._send(async_client, headers, type="email")
        await self._send(async_client, headers, type="push")
        await self._send(
            async_client,
            headers,
            scheduledTime=(utcnow() + timedelta(days=1)).isoformat(),
        )

        by_type = await async_client.get(URL, params={"type": "email"}, headers=headers)
        assert [n["type"] for n in by_type.json()["data"]["notifications"]] == ["email"]

        by_status = await async_client.get(URL, params={"status": "scheduled"}, headers=headers)
        assert by_status.json()["data"]["pagination"]["total"] == 1

        everything = await async_client.get(
            URL, params={"status": "all", "type": "all"}, headers=headers
        )
        assert everything.json()["data"]["pagination"]["total"] == 3

    async def test_limit_above_100_is_rejected(
        self, async_client: AsyncClient, admin_user: dict, auth_headers
    ):
        response = await async_client.get(
            URL, params={"limit": 101}, headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 400

    async def test_empty_list(self, async_client: AsyncClient, admin_user: dict, auth_headers):
        response = await async_client.get(URL, headers=auth_headers(admin_user["api_key"]))
        data = response.json()["data"]
        assert data["notifications"] == []
        assert data["pagination"]["pages"] == 0


class TestNotificationDetail:
    """GET and DELETE /api/v1/admin/notifications/{id}."""

    async def test_malformed_id_is_400(
        self, async_client: AsyncClient, admin_user: dict, auth_headers
    ):
        response = await async_client.get(
            f"{URL}/12345", headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid notification ID"

    async def test_unknown_id_is_404(
        self, async_client: AsyncClient, admin_user: dict, auth_headers
    ):
        response = await async_client.get(
            f"{URL}/{uuid.uuid4()}", headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 404
        assert response.json()["error"] == "Notification not found"

    async def test_delete_removes_delivery_records(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        admin_user: dict,
        members: dict,
        auth_headers,
    ):
        headers = auth_headers(admin_user["api_key"])
        response = await async_client.post(URL, json=payload(), headers=headers)
        notification_id = response.json()["data"]["notificationId"]

        deleted = await async_client.delete(f"{URL}/{notification_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True, "message": "Notification deleted successfully"}

        assert await count(db_session, Notification.id) == 0
        assert await count(db_session, UserNotification.id) == 0

        missing = await async_client.get(f"{URL}/{notification_id}", headers=headers)
        assert missing.status_code == 404

    async def test_delete_unknown_id_succeeds(
        self, async_client: AsyncClient, admin_user: dict, auth_headers
    ):
        response = await async_client.delete(
            f"{URL}/{uuid.uuid4()}", headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 200

    async def test_delete_malformed_id_is_400(
        self, async_client: AsyncClient, admin_user: dict, auth_headers
    ):
        response = await async_client.delete(
            f"{URL}/abc", headers=auth_headers(admin_user["api_key"])
        )
        assert response.status_code == 400


class TestTargetUsers:
    """GET /api/v1/admin/notifications/users."""

    async def test_lists_members_only(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.get(
            f"{URL}/users", headers=auth_headers(admin_user["api_key"])
        )
        users = response.json()["data"]
        assert [u["name"] for u in users] == ["Ada Agent", "Bea Buyer", "Sam Seller"]
        assert {u["userType"] for u in users} == {"buyer", "seller", "agent"}

    async def test_filter_by_user_type(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.get(
            f"{URL}/users",
            params={"userType": "buyer"},
            headers=auth_headers(admin_user["api_key"]),
        )
        users = response.json()["data"]
        assert [u["id"] for u in users] == [str(members["buyer"]["id"])]

    async def test_search_matches_name_or_email(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        headers = auth_headers(admin_user["api_key"])
        by_name = await async_client.get(f"{URL}/users", params={"search": "sam"}, headers=headers)
        assert [u["email"] for u in by_name.json()["data"]] == [members["seller"]["email"]]

        by_email = await async_client.get(
            f"{URL}/users", params={"search": "agent_one@"}, headers=headers
        )
        assert [u["name"] for u in by_email.json()["data"]] == ["Ada Agent"]

    async def test_search_treats_wildcards_literally(
        self, async_client: AsyncClient, admin_user: dict, members: dict, auth_headers
    ):
        response = await async_client.get(
            f"{URL}/users", params={"search": "%"}, headers=auth_headers(admin_user["api_key"])
        )
        assert response.json()["data"] == []
