from sqlalchemy import Column, String, Float, DateTime, Index

from icebreakers.core.db import Base


class Presence(Base):
    """Last accepted position of a user who is sharing location."""

    __tablename__ = "presence"

    user_id = Column(String, primary_key=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    geohash = Column(String(12), nullable=False)

    accuracy_m = Column(Float, nullable=True)
    source = Column(String, nullable=True)  # foreground | background

    updated_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_presence_geohash", "geohash"),
        Index("idx_presence_expires_at", "expires_at"),
    )
