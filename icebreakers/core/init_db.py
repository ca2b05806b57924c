from loguru import logger
from icebreakers.core.db import engine, Base

# Import all models so SQLAlchemy registers them
from icebreakers.models.profile import Profile
from icebreakers.models.presence import Presence
from icebreakers.models.push_device import PushDevice
from icebreakers.models.notification_state import NotificationState

def init_db(bind=None):
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")
