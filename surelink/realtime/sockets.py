"""Socket.IO server and the event names it maps onto the coordinator."""
from __future__ import annotations

import socketio
from loguru import logger

from surelink.core.config import ALLOWED_ORIGINS
from surelink.core.logging import short_id
from surelink.realtime.coordinator import SessionCoordinator


def create_socket_server() -> socketio.AsyncServer:
    # async_mode="asgi": served by uvicorn next to the FastAPI app
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=ALLOWED_ORIGINS,
        ping_timeout=25,
        ping_interval=20,
    )


def register_handlers(sio: socketio.AsyncServer, coordinator: SessionCoordinator) -> None:
    @sio.event
    async def connect(sid, environ, auth=None):
        await coordinator.connect(sid)

    @sio.event
    async def disconnect(sid, *args):
        await coordinator.disconnect(sid)

    @sio.on("updateLocation")
    async def update_location(sid, data=None):
        await coordinator.update_location(sid, data)

    @sio.on("chatMessage")
    async def chat_message(sid, data=None):
        await coordinator.chat_message(sid, data)

    @sio.on("getNearbyUsers")
    async def get_nearby_users(sid, data=None):
        await coordinator.nearby_users(sid, data)

    @sio.on("getEncounterHistory")
    async def get_encounter_history(sid, data=None):
        await coordinator.encounter_history(sid, data)

    @sio.on("getEncounterStats")
    async def get_encounter_stats(sid, data=None):
        await coordinator.encounter_stats(sid, data)

    @sio.on("getHeatmapData")
    async def get_heatmap_data(sid, data=None):
        await coordinator.heatmap_data(sid, data)

    @sio.on("getDailyStats")
    async def get_daily_stats(sid, data=None):
        await coordinator.daily_stats(sid, data)

    @sio.on("*")
    async def unknown_event(event, sid, data=None):
        logger.debug(f"Unhandled socket event {event} | id={short_id(sid)}")
