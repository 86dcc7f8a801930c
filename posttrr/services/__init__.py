"""Services for the POSTTRR API."""

from posttrr.services.activity import log_activity
from posttrr.services.dispatch import NotificationDispatcher
from posttrr.services.idempotency import IdempotencyService

__all__ = ["IdempotencyService", "NotificationDispatcher", "log_activity"]
