from contextlib import asynccontextmanager

import socketio
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from surelink.core.config import ALLOWED_ORIGINS, APP_ENV, APP_VERSION, PORT
from surelink.core.logging import setup_logging
from surelink.core.db import check_connection, close_engine
from surelink.core.init_db import init_db
from surelink.api.router import api_router
from surelink.realtime.coordinator import SessionCoordinator
from surelink.realtime.sockets import create_socket_server, register_handlers
from surelink.services.chat_service import ChatService
from surelink.services.encounter_service import EncounterService

setup_logging()
logger.info("Starting Sure-Link backend")

# One set of in-memory structures per process
sio = create_socket_server()
coordinator = SessionCoordinator(
    emitter=sio,
    chat_service=ChatService(),
    encounter_service=EncounterService(),
)
register_handlers(sio, coordinator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Environment: {APP_ENV}")
    if check_connection():
        init_db()
    coordinator.start()
    yield
    await coordinator.stop()
    close_engine()
    logger.info("Sure-Link backend stopped")


app = FastAPI(
    title="Sure-Link Backend",
    version=APP_VERSION,
    lifespan=lifespan,
)
app.state.coordinator = coordinator

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

# Served object: Socket.IO on /socket.io, everything else to FastAPI
asgi = socketio.ASGIApp(sio, other_asgi_app=app)


@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}


def run() -> None:
    """`surelink` console script: serve the combined ASGI app on PORT."""
    uvicorn.run(asgi, host="0.0.0.0", port=PORT)
