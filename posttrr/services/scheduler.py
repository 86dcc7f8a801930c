"""
Executor for scheduled notifications.

Scheduled notifications are stored with ``status="scheduled"``. A polling
worker started with the application claims rows whose ``scheduled_time``
has passed and runs the normal delivery loop for them.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posttrr.database import utcnow
from posttrr.models.notification import Notification
from posttrr.services.audience import (
    InvalidRecipientIdError,
    NoRecipientsError,
    resolve_audience,
)
from posttrr.services.channels import ChannelSender, get_channel_senders
from posttrr.services.dispatch import NotificationDispatcher

logger = logging.getLogger(__name__)


async def _claim(db: AsyncSession, notification_id) -> bool:
    """Move a scheduled row to pending; False if another worker got it first."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id)
        .where(Notification.status == "scheduled")
        .values(status="pending")
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def dispatch_due_notifications(
    db: AsyncSession,
    senders: dict[str, ChannelSender],
    now: datetime | None = None,
) -> int:
    """
    Deliver every scheduled notification that is due.

    The audience is resolved again at execution time. Returns the number of
    notifications this call handled.
    """
    now = now or utcnow()
    result = await db.execute(
        select(Notification.id)
        .where(Notification.status == "scheduled")
        .where(Notification.scheduled_time <= now)
        .order_by(Notification.scheduled_time)
    )
    due_ids = list(result.scalars().all())

    dispatcher = NotificationDispatcher(db, senders)
    handled = 0
    for notification_id in due_ids:
        if not await _claim(db, notification_id):
            continue
        handled += 1

        notification = await db.get(Notification, notification_id, populate_existing=True)
        try:
            recipients = await resolve_audience(
                db, notification.audience, notification.specific_users
            )
        except (NoRecipientsError, InvalidRecipientIdError) as exc:
            logger.warning("Scheduled notification %s has no recipients: %s", notification_id, exc)
            notification.status = "failed"
            notification.recipient_count = 0
            notification.delivery_meta = {
                "emails_sent": 0,
                "push_notifications_sent": 0,
                "failed_deliveries": 0,
                "error_details": [str(exc)],
            }
            await db.commit()
            continue

        notification.recipient_count = len(recipients)
        notification.sent_at = now
        await db.commit()
        await dispatcher.deliver(notification, recipients)

    if handled:
        logger.info("Dispatched %d scheduled notifications", handled)
    return handled


class ScheduledDispatchWorker:
    """
    Background loop that periodically dispatches due notifications.

    Attributes:
        session_factory: Creates a fresh session per poll
        poll_interval: Seconds between polls
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        poll_interval: float,
        senders_factory: Callable[[], dict[str, ChannelSender]] = get_channel_senders,
    ):
        self.session_factory = session_factory
        self.poll_interval = poll_interval
        self._senders_factory = senders_factory
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> int:
        async with self.session_factory() as session:
            return await dispatch_due_notifications(session, self._senders_factory())

    async def run(self) -> None:
        logger.info("Starting scheduled notification worker (interval: %ss)", self.poll_interval)
        while not self._shutdown_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled notification poll failed")
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduled notification worker stopped")

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        self._shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None
