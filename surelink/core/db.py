from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from loguru import logger

from surelink.core.config import APP_ENV, DATABASE_URL

Base = declarative_base()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # sessions are used from asyncio.to_thread workers
        return {"connect_args": {"check_same_thread": False}}

    connect_args = {"connect_timeout": 2}
    if APP_ENV == "production":
        connect_args["sslmode"] = "require"
    return {
        "pool_size": 10,
        "max_overflow": 10,
        "pool_recycle": 30,
        "pool_pre_ping": True,
        "connect_args": connect_args,
    }


engine = create_engine(DATABASE_URL, echo=False, future=True, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


@event.listens_for(engine, "before_cursor_execute")
def _log_statement(conn, cursor, statement, parameters, context, executemany):
    logger.debug(f"SQL: {statement} | params={parameters}")


def check_connection() -> bool:
    """Startup probe; a failure is logged, not raised."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
    logger.info(f"Database connected | dialect={engine.dialect.name}")
    return True


def close_engine() -> None:
    engine.dispose()
    logger.info("Database pool closed")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
