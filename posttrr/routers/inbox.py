"""Inbox router for a member's own notifications."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.auth.dependencies import get_current_user
from posttrr.database import as_utc, get_db, utcnow
from posttrr.errors import not_found, validation_error
from posttrr.models.user import APIKey, User
from posttrr.models.user_notification import UserNotification
from posttrr.schemas.common import ApiResponse, iso
from posttrr.schemas.inbox import InboxItem, InboxPage, InboxSummary, MarkAllRead, MarkRead

router = APIRouter(prefix="/api/v1/inbox", tags=["Inbox"])


# --- Inbox Summary ---


@router.get(
    "/summary",
    response_model=ApiResponse[InboxSummary],
    status_code=status.HTTP_200_OK,
)
async def get_inbox_summary(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[InboxSummary]:
    """Unread and total counts for the badge on the notification bell."""
    user, _ = auth

    unread_result = await db.execute(
        select(func.count(UserNotification.id)).where(
            UserNotification.user_id == user.id,
            UserNotification.read_at.is_(None),
        )
    )
    total_result = await db.execute(
        select(func.count(UserNotification.id)).where(UserNotification.user_id == user.id)
    )

    return ApiResponse(
        data=InboxSummary(
            unread_count=unread_result.scalar() or 0,
            total_count=total_result.scalar() or 0,
        )
    )


# --- List Notifications ---


@router.get(
    "/notifications",
    response_model=ApiResponse[InboxPage],
    status_code=status.HTTP_200_OK,
)
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
    limit: int = Query(default=20, ge=1, le=100, description="Items per page"),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
) -> ApiResponse[InboxPage]:
    """
    List notifications with cursor-based pagination.

    Returns notifications ordered by created_at descending.
    """
    user, _ = auth

    query = select(UserNotification).where(UserNotification.user_id == user.id)

    if unread_only:
        query = query.where(UserNotification.read_at.is_(None))

    # The cursor is the created_at of the last item on the previous page
    if cursor:
        try:
            cursor_dt = as_utc(datetime.fromisoformat(cursor))
        except ValueError:
            raise validation_error("Invalid cursor")
        query = query.where(UserNotification.created_at < cursor_dt)

    query = query.order_by(UserNotification.created_at.desc()).limit(limit + 1)

    result = await db.execute(query)
    records = list(result.scalars().all())

    has_more = len(records) > limit
    if has_more:
        records = records[:limit]

    items = [
        InboxItem(
            id=str(r.id),
            notification_id=str(r.notification_id),
            type=r.type,
            title=r.title,
            message=r.message,
            resource_id=str(r.resource_id) if r.resource_id else None,
            delivered_at=iso(r.delivered_at),
            created_at=iso(r.created_at),
            read_at=iso(r.read_at),
        )
        for r in records
    ]

    return ApiResponse(
        data=InboxPage(
            items=items,
            next_cursor=items[-1].created_at if items and has_more else None,
            has_more=has_more,
        )
    )


# --- Mark Notification as Read ---


@router.post(
    "/notifications/read-all",
    response_model=ApiResponse[MarkAllRead],
    status_code=status.HTTP_200_OK,
)
async def mark_all_notifications_read(
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[MarkAllRead]:
    """Mark all unread notifications as read."""
    user, _ = auth

    result = await db.execute(
        update(UserNotification)
        .where(
            UserNotification.user_id == user.id,
            UserNotification.read_at.is_(None),
        )
        .values(read_at=utcnow())
    )
    await db.commit()

    return ApiResponse(data=MarkAllRead(marked_count=result.rowcount or 0))


@router.post(
    "/notifications/{notification_id}/read",
    response_model=ApiResponse[MarkRead],
    status_code=status.HTTP_200_OK,
)
async def mark_notification_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    auth: tuple[User, APIKey] = Depends(get_current_user),
) -> ApiResponse[MarkRead]:
    """Mark a single notification as read."""
    user, _ = auth

    result = await db.execute(
        select(UserNotification).where(
            UserNotification.id == notification_id,
            UserNotification.user_id == user.id,
        )
    )
    record = result.scalar_one_or_none()

    if not record:
        raise not_found(f"Notification '{notification_id}' not found")

    if record.read_at is None:
        record.read_at = utcnow()
        await db.commit()

    return ApiResponse(data=MarkRead(id=str(record.id), read_at=iso(record.read_at)))
