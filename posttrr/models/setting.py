"""Singleton settings documents."""

from sqlalchemy import TIMESTAMP, Column, String

from posttrr.database import Base, JSONType, utcnow


class Setting(Base):
    """A settings document keyed by a fixed type tag, e.g. ``watermark``."""

    __tablename__ = "settings"

    type = Column(String(64), primary_key=True)
    value = Column(JSONType, nullable=False, default=dict)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)
