from loguru import logger
from surelink.core.db import engine, Base

# registers the tables on Base.metadata
from surelink.models import encounter, message  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database schema ready | tables={sorted(Base.metadata.tables)}")
