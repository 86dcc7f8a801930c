"""Property listing model."""

import uuid

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from posttrr.database import Base, utcnow


class Property(Base):
    """A listing submitted by a member and moderated by admins."""

    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(String(16), nullable=False, default="pending")
    rejection_reason = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    moderated_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_properties_status",
        ),
        Index("idx_properties_owner", "owner_id"),
    )

    owner = relationship("User", foreign_keys=[owner_id])
