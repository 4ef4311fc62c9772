from typing import Optional

from fastapi import APIRouter, WebSocket
from fastapi.responses import PlainTextResponse

from constants import RELAY_MODE_FLAT
from logging_config import get_logger
from relay import CLOSE_POLICY_VIOLATION, RelaySession

logger = get_logger(__name__)

signaling_router = APIRouter(tags=["signaling"])


async def reject(websocket: WebSocket, status_code: int, detail: str):
    """Refuse the handshake with an HTTP error, or a 1008 close if the server can't send one."""
    if "websocket.http.response" in websocket.scope.get("extensions", {}):
        await websocket.send_denial_response(PlainTextResponse(detail, status_code=status_code))
    else:
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=detail)


async def accept(websocket: WebSocket, where: str) -> bool:
    client_host = websocket.client.host if websocket.client else "unknown"
    try:
        await websocket.accept()
    except Exception as e:
        logger.error(f"WebSocket upgrade failed for {client_host} in {where}: {e}", exc_info=True)
        return False
    logger.info(f"WebSocket connection accepted from {client_host} for {where}")
    return True


@signaling_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, room: Optional[str] = None):
    """Signaling WebSocket.

    Query parameters:
    - room: id returned by POST /create-room (ignored in flat mode)
    """
    state = websocket.app.state

    if state.relay_mode == RELAY_MODE_FLAT:
        if await accept(websocket, "lobby"):
            await RelaySession(websocket, state.lobby).run()
        return

    client_host = websocket.client.host if websocket.client else "unknown"
    if not room:
        logger.info(f"WebSocket connection from {client_host} rejected: no room id")
        await reject(websocket, 400, "Room ID is required")
        return

    target = await state.registry.get_room(room)
    if target is None:
        logger.info(f"WebSocket connection from {client_host} rejected: room {room} not found")
        await reject(websocket, 404, "Room not found")
        return

    if await accept(websocket, f"room {room}"):
        await RelaySession(websocket, target, registry=state.registry).run()
