"""Idempotency key model for safe broadcast retries."""

from sqlalchemy import (
    TIMESTAMP,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)

from posttrr.database import Base, JSONType, utcnow


class IdempotencyKey(Base):
    """
    Idempotency key tracking for write operations.

    Scoped by (key, user_id) to prevent cross-user collisions.
    Stores response for replay on duplicate requests.
    """

    __tablename__ = "idempotency_keys"

    key = Column(String(255), primary_key=True)
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    method = Column(String(10), nullable=False)
    path = Column(Text, nullable=False)
    request_hash = Column(String(64), nullable=False)  # SHA256 of request body
    status = Column(String(16), nullable=False, default="processing")
    response_body = Column(JSONType)
    response_status = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    completed_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        Index("idx_idempotency_created", "created_at"),
    )
