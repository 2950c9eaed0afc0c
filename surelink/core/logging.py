import sys
from loguru import logger
from surelink.core.config import APP_ENV, LOG_FILE, LOG_LEVEL

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{line} | {message}"


def setup_logging() -> None:
    logger.remove()

    # production logs go to a collector, so emit one JSON object per line
    if APP_ENV == "production":
        logger.add(sys.stdout, level=LOG_LEVEL, serialize=True)
    else:
        logger.add(sys.stdout, level=LOG_LEVEL, format=CONSOLE_FORMAT, colorize=True)

    if LOG_FILE:
        logger.add(
            LOG_FILE,
            rotation="10 MB",
            retention="14 days",
            level=LOG_LEVEL,
            format=FILE_FORMAT,
            enqueue=True,
        )

    logger.info(f"Logging initialized | level={LOG_LEVEL} file={LOG_FILE or '-'}")


def short_id(connection_id: str) -> str:
    """Connection ids are logged truncated."""
    return connection_id[:8]
