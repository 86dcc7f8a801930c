"""Database models for the POSTTRR API."""

from posttrr.models.activity import ActivityLog
from posttrr.models.idempotency import IdempotencyKey
from posttrr.models.notification import Notification
from posttrr.models.property import Property
from posttrr.models.setting import Setting
from posttrr.models.user import APIKey, User, UserRole
from posttrr.models.user_notification import UserNotification

__all__ = [
    "User",
    "UserRole",
    "APIKey",
    "Notification",
    "UserNotification",
    "Setting",
    "Property",
    "IdempotencyKey",
    "ActivityLog",
]
