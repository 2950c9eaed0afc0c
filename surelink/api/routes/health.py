from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from surelink.core.config import APP_VERSION
from surelink.core.db import get_db

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/test")
def api_test():
    return {
        "message": "Sure-Link API is running",
        "timestamp": _timestamp(),
        "version": APP_VERSION,
    }


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        tables = inspect(db.get_bind()).get_table_names()
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"status": "unhealthy", "timestamp": _timestamp(), "error": str(e)},
        )

    logger.debug("Health check hit")
    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "database": {
            "connected": True,
            "dialect": db.get_bind().dialect.name,
            "tables": sorted(tables),
        },
    }
