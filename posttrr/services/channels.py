"""Delivery channels used by the dispatch loop.

Email and push delivery are simulated: the senders log the delivery and
count as successful. Real providers plug in by replacing the senders
returned from ``get_channel_senders``.
"""

import logging
from typing import Protocol

from posttrr.models.notification import Notification
from posttrr.models.user import User

logger = logging.getLogger(__name__)


class ChannelSender(Protocol):
    name: str

    async def send(self, recipient: User, notification: Notification) -> None:
        ...


class EmailChannel:
    name = "email"

    async def send(self, recipient: User, notification: Notification) -> None:
        logger.info("Email sent to %s: %s", recipient.email, notification.title)


class PushChannel:
    name = "push"

    async def send(self, recipient: User, notification: Notification) -> None:
        logger.info(
            "Push notification sent to %s: %s",
            recipient.display_name or recipient.username,
            notification.title,
        )


def channel_names(channel: str) -> tuple[str, ...]:
    """Sender names included by a channel tag."""
    if channel == "both":
        return ("email", "push")
    if channel in ("email", "push"):
        return (channel,)
    return ()


def get_channel_senders() -> dict[str, ChannelSender]:
    """FastAPI dependency returning the active senders by name."""
    return {"email": EmailChannel(), "push": PushChannel()}
