"""Per-recipient delivery log and read state."""

import uuid

from sqlalchemy import (
    TIMESTAMP,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from posttrr.database import Base, JSONType, utcnow


class UserNotification(Base):
    """One recipient's copy of a notification.

    ``type`` is the channel for broadcast deliveries and a tag such as
    ``welcome`` or ``post_rejected`` for system-triggered notifications.
    ``dedupe_key`` is unique so that concurrent system triggers cannot
    insert the same record twice.
    """

    __tablename__ = "user_notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    notification_id = Column(
        Uuid,
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="delivered")
    error = Column(Text)
    recipient_info = Column(JSONType)
    resource_id = Column(Uuid)
    dedupe_key = Column(String(255), unique=True)
    delivered_at = Column(TIMESTAMP(timezone=True))
    read_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_user_notifications_notification", "notification_id"),
        Index("idx_user_notifications_user_type", "user_id", "type", "created_at"),
        Index("idx_user_notifications_user_created", "user_id", "created_at"),
    )

    notification = relationship("Notification", back_populates="deliveries")
    user = relationship("User", foreign_keys=[user_id])
