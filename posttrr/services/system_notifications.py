"""
System-triggered notifications.

Registration and listing moderation call these helpers to notify a single
user. They never raise: failures are logged and reported as ``False`` so
the calling flow is never blocked by a notification problem.

Duplicates are suppressed twice over. A lookup by (recipient, tag) within
the tag's recency window short-circuits repeat calls, and every record
carries a ``dedupe_key`` (tag, recipient and window bucket) under a unique
constraint, so two concurrent calls cannot both insert.
"""

import logging
import uuid
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.database import utcnow
from posttrr.models.notification import SYSTEM_CREATOR, Notification, empty_delivery_meta
from posttrr.models.user_notification import UserNotification

logger = logging.getLogger(__name__)

WELCOME = "welcome"
ONBOARDING = "onboarding"
POST_CREATED = "post_created"
POST_REJECTED = "post_rejected"

# None means the marker never expires
RECENCY_WINDOWS: dict[str, timedelta | None] = {
    WELCOME: None,
    ONBOARDING: None,
    POST_CREATED: timedelta(hours=1),
    POST_REJECTED: timedelta(hours=24),
}


def dedupe_key(tag: str, user_id: UUID, now: datetime) -> str:
    """
    Storage-level uniqueness key for a system notification.

    Windowed tags append ``floor(epoch / window)``. A record older than the
    window always falls in an earlier bucket, so the key never blocks an
    insert that the recency lookup allows.
    """
    window = RECENCY_WINDOWS[tag]
    if window is None:
        return f"{tag}:{user_id}"
    bucket = int(now.timestamp() // window.total_seconds())
    return f"{tag}:{user_id}:{bucket}"


async def already_notified(db: AsyncSession, user_id: UUID, tag: str, now: datetime) -> bool:
    query = select(UserNotification.id).where(
        UserNotification.user_id == user_id,
        UserNotification.type == tag,
    )
    window = RECENCY_WINDOWS[tag]
    if window is not None:
        query = query.where(UserNotification.created_at >= now - window)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def _commit_or_duplicate(db: AsyncSession, user_id: UUID, tag: str, now: datetime) -> None:
    """Commit, treating a dedupe_key collision with a concurrent call as done."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if not await already_notified(db, user_id, tag, now):
            raise
        logger.info("%s notification for user %s was created concurrently, skipping", tag, user_id)


def _add_system_notification(
    db: AsyncSession,
    *,
    user_id: UUID,
    title: str,
    message: str,
    tag: str,
    now: datetime,
    resource_id: UUID | None = None,
) -> Notification:
    notification = Notification(
        id=uuid.uuid4(),
        title=title,
        message=message,
        channel="both",
        audience="specific",
        specific_users=[str(user_id)],
        sent_at=now,
        recipient_count=1,
        delivered_count=0,
        status="sent",
        created_by=SYSTEM_CREATOR,
        delivery_meta=empty_delivery_meta(),
    )
    db.add(notification)
    db.add(
        UserNotification(
            notification_id=notification.id,
            user_id=user_id,
            title=title,
            message=message,
            type=tag,
            status="delivered",
            resource_id=resource_id,
            dedupe_key=dedupe_key(tag, user_id, now),
            delivered_at=now,
            created_at=now,
        )
    )

    # No real send happens for system notifications
    notification.delivered_count = 1
    notification.delivery_meta = {
        **empty_delivery_meta(),
        "emails_sent": 1,
        "push_notifications_sent": 1,
    }
    return notification


def welcome_message(user_name: str, user_type: str) -> str:
    counterpart = "sellers" if user_type == "buyer" else "buyers"
    return (
        f"Welcome to POSTTRR, {user_name}! 🏠 We're excited to have you join our "
        f"property community. Start exploring properties and connect with verified "
        f"{counterpart} in your area."
    )


def onboarding_message(user_type: str) -> str:
    if user_type == "seller":
        return (
            "📋 Get started: Complete your profile, upload quality photos, and set "
            "competitive prices to attract buyers."
        )
    return (
        "🔍 Get started: Set your property preferences in Settings to receive "
        "personalized recommendations."
    )


async def send_welcome_notification(
    db: AsyncSession,
    user_id: UUID | str,
    user_name: str,
    user_type: str,
    now: datetime | None = None,
) -> bool:
    """Send the welcome and onboarding-tip notifications to a new user."""
    try:
        uid = UUID(str(user_id))
        now = now or utcnow()
        logger.info("Sending welcome notifications to new %s: %s (%s)", user_type, user_name, uid)

        if await already_notified(db, uid, WELCOME, now):
            logger.info("Welcome notification already sent to %s, skipping", user_name)
            return True

        _add_system_notification(
            db,
            user_id=uid,
            title="Welcome to POSTTRR! 🏠",
            message=welcome_message(user_name, user_type),
            tag=WELCOME,
            now=now,
        )
        _add_system_notification(
            db,
            user_id=uid,
            title="📋 Quick Start Guide",
            message=onboarding_message(user_type),
            tag=ONBOARDING,
            now=now,
        )
        await _commit_or_duplicate(db, uid, WELCOME, now)
        logger.info("Welcome notifications (2) sent to %s", user_name)
        return True
    except Exception:
        logger.exception("Failed to send welcome notification")
        await db.rollback()
        return False


async def _send_listing_notification(
    db: AsyncSession,
    *,
    tag: str,
    property_id: UUID | str,
    user_id: UUID | str,
    title: str,
    message: str,
    now: datetime | None,
) -> bool:
    try:
        uid = UUID(str(user_id))
        pid = UUID(str(property_id))
        now = now or utcnow()

        if await already_notified(db, uid, tag, now):
            logger.info("%s notification already sent to user %s, skipping", tag, uid)
            return True

        _add_system_notification(
            db,
            user_id=uid,
            title=title,
            message=message,
            tag=tag,
            now=now,
            resource_id=pid,
        )
        await _commit_or_duplicate(db, uid, tag, now)
        logger.info("%s notification sent for property %s", tag, pid)
        return True
    except Exception:
        logger.exception("Failed to send %s notification", tag)
        await db.rollback()
        return False


async def send_post_created_notification(
    db: AsyncSession,
    property_id: UUID | str,
    user_id: UUID | str,
    property_title: str,
    now: datetime | None = None,
) -> bool:
    """Tell a seller their listing was received and is awaiting review."""
    return await _send_listing_notification(
        db,
        tag=POST_CREATED,
        property_id=property_id,
        user_id=user_id,
        title="Property Listed Successfully! 🎉",
        message=(
            f'Your property "{property_title}" has been submitted for review. '
            "Once approved by our team, it will be visible to buyers."
        ),
        now=now,
    )


async def send_post_rejected_notification(
    db: AsyncSession,
    property_id: UUID | str,
    user_id: UUID | str,
    property_title: str,
    rejection_reason: str,
    now: datetime | None = None,
) -> bool:
    """Tell a seller their listing was rejected, with the moderator's reason."""
    return await _send_listing_notification(
        db,
        tag=POST_REJECTED,
        property_id=property_id,
        user_id=user_id,
        title="Property Listing Rejected ❌",
        message=(
            f'Your property "{property_title}" was not approved. '
            f"Reason: {rejection_reason}. Please review and resubmit."
        ),
        now=now,
    )
