"""Broadcast notification model."""

import uuid

from sqlalchemy import (
    TIMESTAMP,
    Column,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from posttrr.database import Base, JSONType, utcnow

CHANNELS = ("email", "push", "both")
AUDIENCES = ("all", "buyers", "sellers", "agents", "specific")
STATUSES = ("sent", "failed", "pending", "scheduled")

SYSTEM_CREATOR = "system"


def empty_delivery_meta() -> dict:
    return {
        "emails_sent": 0,
        "push_notifications_sent": 0,
        "failed_deliveries": 0,
        "error_details": [],
    }


class Notification(Base):
    """A notification addressed to an audience.

    Created on dispatch and updated once the delivery loop finishes.
    Scheduled rows stay in ``scheduled`` until the scheduler picks them up.
    """

    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    channel = Column(String(8), nullable=False)  # email, push, both
    audience = Column(String(64), nullable=False)
    specific_users = Column(JSONType)  # exact input id list for "specific"
    sent_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    scheduled_time = Column(TIMESTAMP(timezone=True))
    recipient_count = Column(Integer, nullable=False, default=0)
    delivered_count = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="pending")
    created_by = Column(String(64), nullable=False)
    # Called 'metadata' in the wire format, but that's reserved in SQLAlchemy
    delivery_meta = Column(JSONType, default=empty_delivery_meta)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_sent_at", "sent_at"),
        Index("idx_notifications_status_scheduled", "status", "scheduled_time"),
    )

    deliveries = relationship(
        "UserNotification",
        back_populates="notification",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
