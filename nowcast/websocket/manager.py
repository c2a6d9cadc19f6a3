import asyncio
import json
import logging
from typing import Any, Dict, Set
from fastapi import WebSocket
from collections import defaultdict

logger = logging.getLogger(__name__)

class ConnectionManager:
    """Registry of live notification sockets, keyed by user id"""

    def __init__(self, max_connections: int = 15000):
        self.active_connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self.max_connections = max_connections
        self.lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> bool:
        """Accept and register a user's WebSocket; refused when the server is full"""
        if self.get_connection_count() >= self.max_connections:
            logger.warning(f"Refusing WebSocket for user {user_id}: {self.max_connections} connections open")
            await websocket.close(code=1013)  # Try again later
            return False

        await websocket.accept()

        async with self.lock:
            self.active_connections[user_id].add(websocket)

        logger.info(f"User {user_id} connected to WebSocket. Total connections: {len(self.active_connections[user_id])}")
        return True

    async def disconnect(self, user_id: int, websocket: WebSocket):
        """Disconnect a user's WebSocket"""
        async with self.lock:
            if user_id in self.active_connections:
                self.active_connections[user_id].discard(websocket)
                if not self.active_connections[user_id]:
                    del self.active_connections[user_id]

        logger.info(f"User {user_id} disconnected from WebSocket")

    def is_online(self, user_id: int) -> bool:
        return bool(self.active_connections.get(user_id))

    async def push_to_user(self, user_id: int, message: Dict[str, Any]) -> int:
        """
        Send a message to every open socket of a user.

        Returns the number of sockets that received it. Sockets whose send
        fails are removed from the registry; nothing is buffered.
        """
        connections = list(self.active_connections.get(user_id, ()))

        if not connections:
            logger.debug(f"No active WebSocket connections for user {user_id}")
            return 0

        payload = json.dumps(message, default=str)
        results = await asyncio.gather(
            *(self._send_message(connection, payload) for connection in connections)
        )

        broken = [connection for connection, ok in zip(connections, results) if not ok]
        if broken:
            async with self.lock:
                remaining = self.active_connections.get(user_id)
                if remaining is not None:
                    remaining.difference_update(broken)
                    if not remaining:
                        del self.active_connections[user_id]
            logger.warning(f"Removed {len(broken)} broken connection(s) for user {user_id}")

        return sum(1 for ok in results if ok)

    async def _send_message(self, websocket: WebSocket, message: str) -> bool:
        """Send message to WebSocket with error handling"""
        try:
            await websocket.send_text(message)
            return True
        except Exception as e:
            logger.error(f"Error sending WebSocket message: {e}")
            return False

    def get_connection_count(self) -> int:
        """Get total count of WebSocket connections"""
        return sum(len(connections) for connections in self.active_connections.values())
