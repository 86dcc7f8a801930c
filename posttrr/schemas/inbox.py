"""Inbox-related Pydantic schemas."""

from posttrr.schemas.common import CamelModel


class InboxSummary(CamelModel):
    """Response for inbox summary."""

    unread_count: int
    total_count: int


class InboxItem(CamelModel):
    """Single notification in a user's inbox."""

    id: str
    notification_id: str
    type: str
    title: str
    message: str
    resource_id: str | None
    delivered_at: str | None
    created_at: str
    read_at: str | None


class InboxPage(CamelModel):
    """Response for listing notifications."""

    items: list[InboxItem]
    next_cursor: str | None
    has_more: bool


class MarkRead(CamelModel):
    """Response for marking notification as read."""

    id: str
    read_at: str


class MarkAllRead(CamelModel):
    """Response for marking all notifications as read."""

    marked_count: int
