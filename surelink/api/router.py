from fastapi import APIRouter

from surelink.api.routes import health
from surelink.api.routes import stats

api_router = APIRouter(prefix="/api")

api_router.include_router(health.router, tags=["health"])
api_router.include_router(stats.router, tags=["stats"])
