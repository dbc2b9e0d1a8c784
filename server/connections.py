"""
Live WebSocket registry for the gateway.

The hub maps connection ids to sockets and fans messages out to a room.
It holds no game or membership state: room membership is always read from
the RoomManager at send time.
"""

import logging
from typing import Iterable, Optional

from fastapi import WebSocket

from room import Room

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Tracks open sockets by connection_id."""

    def __init__(self):
        self.sockets: dict[str, WebSocket] = {}

    def __len__(self) -> int:
        return len(self.sockets)

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self.sockets[connection_id] = websocket

    def unregister(self, connection_id: str) -> None:
        self.sockets.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[WebSocket]:
        return self.sockets.get(connection_id)

    async def send(self, connection_id: str, message: dict) -> bool:
        """
        Send a message to one connection.

        Returns:
            True if the message was handed to the socket.
        """
        websocket = self.sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send to {connection_id[:8]} failed: {e}")
            return False

    async def broadcast(self, room: Room, message: dict, exclude: Iterable[str] = ()) -> None:
        """
        Send a message to every connected participant in a room.

        Sends are awaited one after another so each client sees messages in
        the order the server applied them.
        """
        skipped = set(exclude)
        for participant in list(room.participants()):
            if participant.connection_id in skipped or not participant.is_connected:
                continue
            await self.send(participant.connection_id, message)

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> None:
        """Close all active WebSocket connections gracefully."""
        for connection_id, websocket in list(self.sockets.items()):
            try:
                await websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug(f"Close of {connection_id[:8]} failed: {e}")
        self.sockets.clear()
        logger.info("All WebSocket connections closed")
