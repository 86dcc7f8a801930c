"""Notification broadcast schemas."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field, field_validator

from posttrr.schemas.common import CamelModel

Channel = Literal["email", "push", "both"]


class SendNotificationRequest(CamelModel):
    """Body of a broadcast send.

    Title and message are checked by the endpoint so a missing value gets
    the dedicated error message.
    """

    title: str | None = None
    message: str | None = None
    type: Channel = "both"
    audience: str = Field(default="all", max_length=64)
    specific_users: list[str] | None = None
    scheduled_time: datetime | None = None

    @field_validator("scheduled_time")
    @classmethod
    def normalize_scheduled_time(cls, v: datetime | None) -> datetime | None:
        """Store schedule times in UTC; naive values are taken as UTC."""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class DeliveryMeta(CamelModel):
    emails_sent: int = 0
    push_notifications_sent: int = 0
    failed_deliveries: int = 0
    error_details: list[str] = []


class NotificationItem(CamelModel):
    """A broadcast notification as returned to admins."""

    id: str
    title: str
    message: str
    type: str
    audience: str
    specific_users: list[str] | None
    sent_at: str | None
    scheduled_time: str | None
    recipient_count: int
    delivered_count: int
    status: str
    created_by: str
    metadata: DeliveryMeta


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationList(CamelModel):
    notifications: list[NotificationItem]
    pagination: Pagination


class SendNotificationResult(CamelModel):
    notification_id: str
    recipient_count: int
    status: str


class DeliveryDetail(CamelModel):
    """One recipient's delivery record."""

    id: str
    user_id: str
    title: str
    message: str
    type: str
    status: str
    error: str | None
    recipient_info: dict[str, Any] | None
    delivered_at: str | None
    read_at: str | None
    created_at: str | None


class NotificationDetail(CamelModel):
    notification: NotificationItem
    delivery_details: list[DeliveryDetail]


class TargetUser(CamelModel):
    """A user an admin can address directly."""

    id: str
    name: str | None
    email: str | None
    user_type: str | None
    created_at: str | None
