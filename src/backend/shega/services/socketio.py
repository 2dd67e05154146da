"""Socket.IO server for real-time telemetry, alert and command fan-out."""

from typing import Any

import socketio
import structlog

from shega.core.config import settings
from shega.core.metrics import decrement_websocket_connections, increment_websocket_connections
from shega.core.security import decode_token
from shega.services.contracts import LiveFanout

logger = structlog.get_logger()

ADMIN_ROOM = "admin"

# Use Redis client manager for multi-worker support
_client_manager = None
if settings.redis_url:
    try:
        _client_manager = socketio.AsyncRedisManager(settings.redis_url)
        logger.info("Socket.IO using Redis client manager for multi-worker support")
    except Exception as e:
        logger.warning("Failed to create Redis client manager, falling back to in-memory", error=str(e))

# Create Socket.IO server with ASGI support
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    client_manager=_client_manager,
    logger=False,
    engineio_logger=False,
)


def create_combined_app(fastapi_app: Any) -> Any:
    """Wrap FastAPI app with Socket.IO ASGI app."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)


def home_room(home_id: str) -> str:
    return f"home:{home_id}"


def _extract_token(environ: dict[str, Any], auth: dict[str, Any] | None) -> str | None:
    if auth and auth.get("token"):
        return auth["token"]
    header = environ.get("HTTP_AUTHORIZATION", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1]
    return None


# Store connected clients with their user info
connected_clients: dict[str, dict[str, Any]] = {}


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> bool:
    """Authenticate the handshake token and join the caller's rooms.

    Admins join the admin room; everyone joins ``home:<id>`` for each home
    listed in the token.
    """
    token = _extract_token(environ, auth)
    if not token:
        logger.warning("Client connection rejected: no token", sid=sid)
        return False

    claims = decode_token(token)
    if claims is None:
        logger.warning("Client connection rejected: invalid token", sid=sid)
        return False

    role = claims.get("role", "user")
    homes = [str(h) for h in claims.get("homes") or []]
    rooms: set[str] = set()

    if role == "admin":
        await sio.enter_room(sid, ADMIN_ROOM)
        rooms.add(ADMIN_ROOM)
    for home_id in homes:
        room = home_room(home_id)
        await sio.enter_room(sid, room)
        rooms.add(room)

    connected_clients[sid] = {"user_id": claims.get("sub"), "role": role, "rooms": rooms}
    increment_websocket_connections()

    await sio.emit("ready", {"ok": True, "rooms": sorted(rooms)}, to=sid)
    logger.info("Client connected", sid=sid, role=role, homes=homes)
    return True


@sio.event
async def disconnect(sid: str) -> None:
    """Handle client disconnection."""
    if connected_clients.pop(sid, None) is not None:
        decrement_websocket_connections()
    logger.info("Client disconnected", sid=sid)


async def _emit_scoped(event: str, data: dict[str, Any]) -> None:
    home_id = data.get("homeId")
    if home_id:
        await sio.emit(event, data, room=home_room(home_id))
    await sio.emit(event, data, room=ADMIN_ROOM)
    logger.debug(f"Emitted {event}", home_id=home_id)


async def emit_telemetry(record: dict[str, Any]) -> None:
    """Emit a persisted reading to its home and to admins."""
    await _emit_scoped("telemetry", record)


async def emit_alert(alert: dict[str, Any]) -> None:
    """Emit an alert record to its home and to admins."""
    await _emit_scoped("alert", alert)


async def emit_command(command: dict[str, Any]) -> None:
    """Emit a dispatched control command to its home and to admins."""
    await _emit_scoped("command", command)


class SocketIOFanout(LiveFanout):
    """LiveFanout backed by the module-level Socket.IO server."""

    async def emit_telemetry(self, record: dict[str, Any]) -> None:
        await emit_telemetry(record)

    async def emit_alert(self, alert: dict[str, Any]) -> None:
        await emit_alert(alert)

    async def emit_command(self, command: dict[str, Any]) -> None:
        await emit_command(command)
