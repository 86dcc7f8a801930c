"""Activity log model for the admin audit trail."""

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


class ActivityLog(Base):
    """
    Activity log for auditing admin actions.

    Tracks create, update, delete operations on notifications, listings
    and settings with HTTP context for compliance and debugging.
    """

    __tablename__ = "activity_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    timestamp = Column(TIMESTAMP(timezone=True), default=utcnow, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    api_key_id = Column(Uuid, ForeignKey("api_keys.id", ondelete="SET NULL"))
    action = Column(String(16), nullable=False)
    resource = Column(String(32), nullable=False)
    resource_id = Column(String(64), nullable=False)
    request_id = Column(Text)
    ip_address = Column(String(45))
    user_agent = Column(String(512))
    extra_data = Column(JSONType, default=dict)  # Called 'metadata' in design, but that's reserved in SQLAlchemy

    # Relationships
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        Index("idx_activity_resource", "resource", "resource_id", "timestamp"),
        Index("idx_activity_user", "user_id", "timestamp"),
        Index("idx_activity_timestamp", "timestamp"),
    )
