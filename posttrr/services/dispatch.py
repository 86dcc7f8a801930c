"""Broadcast notification creation and delivery."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from posttrr.database import utcnow
from posttrr.models.notification import Notification, empty_delivery_meta
from posttrr.models.user import User
from posttrr.models.user_notification import UserNotification
from posttrr.services.audience import resolve_audience
from posttrr.services.channels import ChannelSender, channel_names

logger = logging.getLogger(__name__)


def recipient_info(user: User) -> dict:
    return {
        "name": user.display_name,
        "email": user.email,
        "user_type": user.user_type,
    }


class NotificationDispatcher:
    """Creates broadcast notifications and runs their delivery loop."""

    def __init__(self, db: AsyncSession, senders: dict[str, ChannelSender]):
        self.db = db
        self.senders = senders

    async def create(
        self,
        *,
        title: str,
        message: str,
        channel: str,
        audience: str,
        created_by: str,
        specific_users: list[str] | None = None,
        scheduled_time: datetime | None = None,
    ) -> tuple[Notification, list[User]]:
        """
        Resolve recipients and persist the notification record.

        The record is committed before delivery starts. Nothing is written
        when the audience is empty.

        Raises:
            NoRecipientsError, InvalidRecipientIdError: from audience resolution
        """
        recipients = await resolve_audience(self.db, audience, specific_users)

        notification = Notification(
            title=title,
            message=message,
            channel=channel,
            audience=audience,
            specific_users=list(specific_users or []) if audience == "specific" else None,
            sent_at=scheduled_time or utcnow(),
            scheduled_time=scheduled_time,
            recipient_count=len(recipients),
            delivered_count=0,
            status="scheduled" if scheduled_time else "pending",
            created_by=created_by,
            delivery_meta=empty_delivery_meta(),
        )
        self.db.add(notification)
        await self.db.commit()
        return notification, recipients

    async def deliver(self, notification: Notification, recipients: list[User]) -> Notification:
        """
        Deliver to every recipient, best effort and without retry.

        A failure for one recipient is recorded and the loop moves on. The
        notification ends ``failed`` only when every recipient failed.
        """
        try:
            await self._deliver_all(notification, recipients)
        except Exception as exc:
            logger.exception("Error sending notification %s", notification.id)
            await self.db.rollback()
            await self.db.refresh(notification)
            notification.status = "failed"
            notification.delivered_count = 0
            notification.delivery_meta = {
                "emails_sent": 0,
                "push_notifications_sent": 0,
                "failed_deliveries": len(recipients),
                "error_details": [f"Sending failed: {exc}"],
            }
            await self.db.commit()
        return notification

    async def _deliver_all(self, notification: Notification, recipients: list[User]) -> None:
        sent = {"email": 0, "push": 0}
        delivered = 0
        failed = 0
        error_details: list[str] = []

        for recipient in recipients:
            record = UserNotification(
                notification_id=notification.id,
                user_id=recipient.id,
                title=notification.title,
                message=notification.message,
                type=notification.channel,
                status="delivered",
                recipient_info=recipient_info(recipient),
                created_at=utcnow(),
            )
            self.db.add(record)
            try:
                for name in channel_names(notification.channel):
                    await self.senders[name].send(recipient, notification)
                    sent[name] += 1
            except Exception as exc:
                logger.error("Failed to send to %s: %s", recipient.email, exc)
                failed += 1
                error_details.append(f"Failed to send to {recipient.email}: {exc}")
                record.status = "failed"
                record.error = str(exc)
            else:
                delivered += 1
                record.delivered_at = utcnow()

        notification.delivered_count = delivered
        notification.status = "failed" if failed == len(recipients) else "sent"
        notification.delivery_meta = {
            "emails_sent": sent["email"],
            "push_notifications_sent": sent["push"],
            "failed_deliveries": failed,
            "error_details": error_details,
        }
        await self.db.commit()

        logger.info(
            "Notification %s delivered to %d recipients, %d failed",
            notification.id,
            delivered,
            failed,
        )
