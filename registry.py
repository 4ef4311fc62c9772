import uuid
from typing import Dict, Optional

from connection import Connection
from locks import RWLock
from logging_config import get_logger

logger = get_logger(__name__)


class RoomClosedError(Exception):
    """The room was removed from the registry before the join completed."""

    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} is closed")
        self.room_id = room_id


class Room:
    def __init__(self, room_id: str):
        self.room_id = room_id
        self.closed = False
        self._members = set()
        self._lock = RWLock()

    def __repr__(self):
        return f"<Room {self.room_id} members={len(self._members)}>"

    def __len__(self):
        return len(self._members)

    def members(self) -> frozenset:
        return frozenset(self._members)

    async def join(self, conn: Connection):
        async with self._lock.write():
            if self.closed:
                raise RoomClosedError(self.room_id)
            self._members.add(conn)
            count = len(self._members)
        logger.info(f"Connection {conn.label} joined room {self.room_id} (members: {count})")

    async def leave(self, conn: Connection) -> bool:
        """Remove `conn`; returns True when the room is now empty. Leaving twice is a no-op."""
        async with self._lock.write():
            was_member = conn in self._members
            self._members.discard(conn)
            count = len(self._members)
        if was_member:
            logger.info(f"Connection {conn.label} left room {self.room_id} (members: {count})")
        return count == 0

    async def broadcast(self, sender: Connection, payload: str) -> int:
        """Write `payload` verbatim to every member except `sender`.

        A failed write is logged and skipped. The failing member stays in the room:
        its own receive loop notices the broken socket and removes it.
        """
        delivered = 0
        async with self._lock.read():
            for member in self._members:
                if member is sender:
                    continue
                try:
                    await member.send(payload)
                    delivered += 1
                except Exception as e:
                    logger.warning(f"Error broadcasting message to connection {member.label} in room {self.room_id}: {e}", exc_info=True)
        logger.debug(f"Broadcast from {sender.label} in room {self.room_id} delivered to {delivered} connections")
        return delivered


class RoomRegistry:
    """Process-wide map of room id to Room.

    Lock order is always registry -> room. Nothing outside this class touches the map.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = RWLock()

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id):
        return room_id in self._rooms

    def room_ids(self) -> list:
        return list(self._rooms)

    async def create_room(self) -> str:
        room_id = str(uuid.uuid4())
        async with self._lock.write():
            self._rooms[room_id] = Room(room_id)
            total = len(self._rooms)
        logger.info(f"Room {room_id} created (rooms: {total})")
        return room_id

    async def get_room(self, room_id: str) -> Optional[Room]:
        async with self._lock.read():
            room = self._rooms.get(room_id)
        if room is None:
            logger.debug(f"Room {room_id} not found")
        return room

    async def delete_room_if_empty(self, room_id: str) -> bool:
        """Remove the room if it is still registered and still has no members.

        Emptiness is checked again under both locks: a join may have landed between
        the last leave and this call.
        """
        async with self._lock.write():
            room = self._rooms.get(room_id)
            if room is None:
                return False
            async with room._lock.write():
                if len(room._members) > 0:
                    logger.debug(f"Room {room_id} gained a member before deletion, keeping it")
                    return False
                room.closed = True
                del self._rooms[room_id]
            total = len(self._rooms)
        logger.info(f"Room {room_id} deleted (rooms: {total})")
        return True


room_registry = RoomRegistry()
