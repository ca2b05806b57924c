import sys

from loguru import logger

from icebreakers.core.config import APP_ENV, LOG_FILE, LOG_LEVEL

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {name}:{line} | {message}"


def setup_logging() -> None:
    logger.remove()

    # variable values in tracebacks only outside production
    diagnose = APP_ENV != "production"

    logger.add(sys.stdout, level=LOG_LEVEL, format=LOG_FORMAT, diagnose=diagnose)

    if LOG_FILE:
        logger.add(
            LOG_FILE,
            level=LOG_LEVEL,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
            diagnose=diagnose,
        )

    logger.info(f"Logging initialized | env={APP_ENV} level={LOG_LEVEL} file={LOG_FILE or '-'}")
