import asyncio
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from connection import Connection, ConnectionState
from logging_config import get_logger
from registry import Room, RoomClosedError, RoomRegistry
from schemas.signaling import MessageType, SignalingMessage

logger = get_logger(__name__)

# Close codes for a peer that left on purpose (normal closure, going away, no status sent)
EXPECTED_CLOSE_CODES = (1000, 1001, 1005)
CLOSE_POLICY_VIOLATION = 1008


class RelaySession:
    """Receive loop for one accepted WebSocket.

    The session joins `room`, relays every recognized message from its client to
    the other members and tears itself down exactly once when the read fails.
    `registry` is None for rooms that must outlive their members (the flat-mode lobby).
    """

    def __init__(self, websocket: WebSocket, room: Room, registry: Optional[RoomRegistry] = None):
        self.room = room
        self.registry = registry
        self.conn = Connection(websocket, room=room)
        self.message_count = 0
        self._release_task = None

    async def run(self):
        conn = self.conn
        try:
            await self.room.join(conn)
        except RoomClosedError:
            logger.info(f"Connection {conn.label} from {conn.client} rejected: room {self.room.room_id} closed during join")
            conn.transition(ConnectionState.CLOSED)
            await conn.close(code=CLOSE_POLICY_VIOLATION, reason="Room not found")
            return
        conn.transition(ConnectionState.JOINED)

        try:
            await self._receive_loop()
        finally:
            await self.teardown()

    async def _receive_loop(self):
        conn = self.conn
        while True:
            try:
                message = await conn.websocket.receive()
            except WebSocketDisconnect as e:
                self._log_closure(e.code, e.reason)
                break
            except Exception as e:
                logger.error(f"Error receiving message from connection {conn.label} in room {self.room.room_id}: {e}", exc_info=True)
                break

            if message["type"] == "websocket.disconnect":
                self._log_closure(message.get("code", 1000), message.get("reason"))
                break

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                try:
                    raw = message["bytes"].decode("utf-8")
                except UnicodeDecodeError as e:
                    logger.warning(f"Error decoding binary message from connection {conn.label}: {e}")
                    continue
            if raw is None:
                continue

            await self.handle_message(raw)

        conn.transition(ConnectionState.DRAINING)

    async def handle_message(self, raw: str) -> bool:
        """Decode one frame and broadcast it if its type is relayed. Returns True if broadcast."""
        conn = self.conn
        self.message_count += 1
        try:
            envelope = SignalingMessage.decode(raw)
        except ValidationError as e:
            logger.warning(f"Error parsing message #{self.message_count} from connection {conn.label}: {e.errors(include_url=False)}")
            return False

        message_type = envelope.message_type
        if message_type == MessageType.UNRECOGNIZED:
            logger.warning(f"Unknown message type from connection {conn.label}: {envelope.type!r}")
            return False

        logger.debug(f"Relaying {message_type.value} #{self.message_count} from connection {conn.label} in room {self.room.room_id}")
        # forward the original text, never a re-serialized copy
        await self.room.broadcast(conn, raw)
        return True

    def _log_closure(self, code: int, reason: Optional[str] = None):
        conn = self.conn
        if code in EXPECTED_CLOSE_CODES:
            logger.info(f"WebSocket closed normally for connection {conn.label} in room {self.room.room_id} (code {code})")
        else:
            logger.warning(f"WebSocket closed unexpectedly for connection {conn.label} in room {self.room.room_id} (code {code}, reason: {reason or 'n/a'})")

    async def teardown(self):
        """Leave the room, delete it if it became empty, close the socket. Runs once.

        The work runs in its own task behind asyncio.shield: cancelling the session
        while it waits on the room lock must not leave a dead member behind.
        """
        conn = self.conn
        if not conn.transition(ConnectionState.CLOSED):
            logger.debug(f"Teardown already done for connection {conn.label}")
            return

        self._release_task = asyncio.ensure_future(self._release())
        await asyncio.shield(self._release_task)

    async def _release(self):
        conn = self.conn
        now_empty = await self.room.leave(conn)
        if now_empty and self.registry is not None:
            await self.registry.delete_room_if_empty(self.room.room_id)

        await conn.close()
        logger.debug(f"Connection {conn.label} closed after {self.message_count} messages")
