from sqlalchemy import Column, String, Integer, DateTime

from icebreakers.core.db import Base


class NotificationState(Base):
    """Per-user crowd alert cooldown. `version` guards concurrent writers."""

    __tablename__ = "notification_state"

    user_id = Column(String, primary_key=True)

    last_crowd_at = Column(DateTime, nullable=True)
    last_any_at = Column(DateTime, nullable=True)
    last_fingerprint = Column(String, nullable=True)

    version = Column(Integer, nullable=False, default=0)
