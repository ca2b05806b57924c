from sqlalchemy import Column, String, Float, Boolean, DateTime, func

from icebreakers.core.db import Base


class Profile(Base):
    __tablename__ = "profile"

    user_id = Column(String, primary_key=True)

    # public fields shown on the nearby screen
    display_name = Column(String, nullable=True)
    field_of_study = Column(String, nullable=True)
    hobbies = Column(String, nullable=True)
    photo_ref = Column(String, nullable=True)
    ice_breaker_one = Column(String, nullable=True)
    ice_breaker_two = Column(String, nullable=True)
    ice_breaker_three = Column(String, nullable=True)

    # location control
    sharing_enabled = Column(Boolean, nullable=False, default=True)
    permission_status = Column(String, nullable=False, default="unknown")
    control_updated_at = Column(DateTime, nullable=True)

    # copies of the last accepted ping
    last_location_at = Column(DateTime, nullable=True)
    last_accuracy_m = Column(Float, nullable=True)
    last_source = Column(String, nullable=True)

    updated_at = Column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )
