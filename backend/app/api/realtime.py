"""
Socket.IO surface of the relay.

Client → server:
    join-admin         reply "existing-alerts" (snapshot) to that client only
    location-update    re-broadcast "location-update" to every other client

Server → clients (driven by RelayHub mutations):
    new-sos-alert, alert-updated, alert-deleted
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import socketio

from backend.app.core.config import settings
from backend.app.relay.hub import RelayEvent, get_hub

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS,
    logger=False,
    engineio_logger=False,
)

connected_clients: set = set()


async def connect(sid, environ, auth=None):
    connected_clients.add(sid)
    logger.info("Socket.IO client connected: %s", sid)


async def disconnect(sid, *args):
    connected_clients.discard(sid)
    logger.info("Socket.IO client disconnected: %s", sid)


async def join_admin(sid, data: Optional[Any] = None):
    """A dashboard joined: send it the current alert list."""
    alerts = get_hub().list()
    logger.info("Admin client joined: %s (%d alerts)", sid, len(alerts))
    await sio.emit(RelayEvent.EXISTING_ALERTS, alerts, to=sid)


async def location_update(sid, data):
    logger.debug("Location update from %s: %s", sid, data)
    await sio.emit(RelayEvent.LOCATION_UPDATE, data, skip_sid=sid)


sio.on("connect", connect)
sio.on("disconnect", disconnect)
sio.on("join-admin", join_admin)
sio.on(RelayEvent.LOCATION_UPDATE, location_update)


async def emit_to_observers(event: str, data: Any) -> None:
    """RelayHub emitter: push an event to every connected client."""
    await sio.emit(event, data)


def wrap(app) -> socketio.ASGIApp:
    """Mount the Socket.IO server around an ASGI app."""
    return socketio.ASGIApp(sio, other_asgi_app=app)
