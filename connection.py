import asyncio
import uuid
from enum import Enum

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    DRAINING = "draining"
    CLOSED = "closed"


class Connection:
    """One client's WebSocket plus the lock that serialises writes to it.

    Identity is the object itself; `label` only exists to make log lines readable.
    """

    def __init__(self, websocket: WebSocket, room=None):
        self.websocket = websocket
        self.room = room
        self.state = ConnectionState.CONNECTING
        self.label = uuid.uuid4().hex[:8]
        self._write_lock = asyncio.Lock()

    def __repr__(self):
        room_id = self.room.room_id if self.room is not None else None
        return f"<Connection {self.label} room={room_id} state={self.state.value}>"

    @property
    def client(self) -> str:
        client = getattr(self.websocket, "client", None)
        if client is None:
            return "unknown"
        return f"{client.host}:{client.port}"

    async def send(self, payload: str):
        """Write one text frame. Concurrent callers are serialised, never interleaved."""
        async with self._write_lock:
            await self.websocket.send_text(payload)

    def transition(self, new_state: ConnectionState) -> bool:
        """Move to `new_state`; returns False if the connection is already closed."""
        if self.state == ConnectionState.CLOSED:
            return False
        logger.debug(f"Connection {self.label}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        return True

    async def close(self, code: int = 1000, reason: str = None):
        ws = self.websocket
        if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
            logger.debug(f"Connection {self.label} already closed, nothing to do")
            return
        try:
            async with self._write_lock:
                await ws.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket for connection {self.label}: {e}")
