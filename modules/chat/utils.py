import asyncio
import logging
from typing import Dict, Set
from fastapi import WebSocket

logger = logging.getLogger(__name__)


def room_for_incident(incident_id) -> str:
    return f"incident-{incident_id}"


class ChatRoomManager:
    """In-memory WebSocket membership grouped by incident room."""
    def __init__(self) -> None:
        self._room_to_connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def join(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            self._room_to_connections.setdefault(room, set()).add(websocket)

    async def leave(self, websocket: WebSocket, room: str) -> None:
        async with self._lock:
            conns = self._room_to_connections.get(room)
            if conns and websocket in conns:
                conns.remove(websocket)
                if not conns:
                    self._room_to_connections.pop(room, None)

    async def leave_all(self, websocket: WebSocket) -> None:
        async with self._lock:
            for room in list(self._room_to_connections):
                conns = self._room_to_connections[room]
                conns.discard(websocket)
                if not conns:
                    self._room_to_connections.pop(room, None)

    def is_member(self, websocket: WebSocket, room: str) -> bool:
        return websocket in self._room_to_connections.get(room, ())

    async def broadcast(self, room: str, message: dict) -> int:
        """Send to every connection in the room; returns how many received it."""
        # Copy to avoid size change during iteration
        connections = list(self._room_to_connections.get(room, set()))
        delivered = 0
        for ws in connections:
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping broken connection from {room}: {e}")
                await self.leave(ws, room)
        return delivered


manager = ChatRoomManager()
