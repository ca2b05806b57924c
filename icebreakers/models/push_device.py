from sqlalchemy import Column, String, Text, Boolean, DateTime, func

from icebreakers.core.db import Base


class PushDevice(Base):
    __tablename__ = "push_device"

    user_id = Column(String, primary_key=True)
    device_id = Column(String, primary_key=True)

    push_token = Column(Text, nullable=False)
    platform = Column(String, nullable=False)  # ios | android
    enabled = Column(Boolean, nullable=False, default=True)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
