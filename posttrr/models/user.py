"""User, UserRole, and APIKey models."""

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

from posttrr.database import Base, JSONType, utcnow

USER_TYPES = ("buyer", "seller", "agent")


class User(Base):
    """User account model.

    ``user_type`` classifies marketplace members; staff accounts have none
    and are never targeted by broadcasts.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(32), unique=True, nullable=False)
    email = Column(String, unique=True)
    display_name = Column(Text)
    user_type = Column(String(16))
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    last_seen_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "user_type IS NULL OR user_type IN ('buyer', 'seller', 'agent')",
            name="ck_users_user_type",
        ),
        Index("idx_users_user_type", "user_type"),
    )

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserRole.user_id",
    )
    api_keys = relationship("APIKey", back_populates="user", cascade="all, delete-orphan")


class UserRole(Base):
    """User role assignment model."""

    __tablename__ = "user_roles"

    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(String, primary_key=True)
    granted_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    user = relationship("User", back_populates="roles", foreign_keys=[user_id])


class APIKey(Base):
    """API key model for client authentication."""

    __tablename__ = "api_keys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))
    key_hash = Column(Text, nullable=False)
    key_prefix = Column(String(12), nullable=False)
    name = Column(Text)
    scopes = Column(JSONType, default=list)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    last_used_at = Column(TIMESTAMP(timezone=True))
    expires_at = Column(TIMESTAMP(timezone=True))
    revoked_at = Column(TIMESTAMP(timezone=True))

    __table_args__ = (
        Index("idx_api_keys_hash", "key_hash"),
    )

    user = relationship("User", back_populates="api_keys")
