"""
WebSocket connection manager for live store snapshots.

Tracks the open live connections per user and forwards replicated store
snapshots from a subscription to a socket.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Set

from fastapi import WebSocket

from matchday.services.pubsub_broker import StoreSnapshot, Subscription
from matchday.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Timeout for WebSocket connections (30 seconds of inactivity)
WEBSOCKET_TIMEOUT_SECONDS = 30


def snapshot_message(snapshot: StoreSnapshot) -> dict:
    return {
        "type": "snapshot",
        "path": snapshot.path,
        "value": snapshot.value,
        "server_time": snapshot.server_time,
    }


class WebSocketManager:
    """Manages live WebSocket connections."""

    def __init__(self):
        # user_id -> open connections of that user
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # websocket -> last activity
        self.connection_timestamps: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        """
        Register a WebSocket connection for a user.

        Args:
            user_id: ID of the user
            websocket: WebSocket connection object
        """
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
            self.connection_timestamps[websocket] = utcnow()
            logger.info(
                f"Live connection opened for user {user_id} "
                f"(total connections: {len(self.active_connections[user_id])})"
            )

    async def disconnect(self, user_id: str, websocket: WebSocket):
        async with self._lock:
            if user_id in self.active_connections:
                self.active_connections[user_id].discard(websocket)
                if not self.active_connections[user_id]:
                    del self.active_connections[user_id]
            self.connection_timestamps.pop(websocket, None)
            logger.info(f"Live connection closed for user {user_id}")

    async def send_json(self, websocket: WebSocket, message: dict) -> bool:
        """
        Send one message to a connection.

        Returns:
            True if sent, False if the connection is gone
        """
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.warning(f"Error sending live message: {e}")
            return False
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()
        return True

    async def forward(self, websocket: WebSocket, subscription: Subscription) -> None:
        """
        Push every snapshot of ``subscription`` to ``websocket`` until either
        side closes.
        """
        try:
            async for snapshot in subscription:
                if not await self.send_json(websocket, snapshot_message(snapshot)):
                    break
        finally:
            subscription.close()

    def is_connected(self, websocket: WebSocket) -> bool:
        return websocket in self.connection_timestamps

    async def get_connection_count(self, user_id: str) -> int:
        async with self._lock:
            return len(self.active_connections.get(user_id, ()))

    async def update_activity(self, websocket: WebSocket):
        """
        Update the last activity timestamp for a connection.
        Called when receiving ping or other messages from client.
        """
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()

    async def cleanup_stale_connections(self) -> int:
        """
        Close and drop connections without activity within the timeout period.

        Returns:
            Number of connections cleaned up
        """
        timeout_threshold = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS)

        stale = []
        async with self._lock:
            for user_id, connections in self.active_connections.items():
                for websocket in connections:
                    last_activity = self.connection_timestamps.get(websocket)
                    if last_activity is not None and last_activity < timeout_threshold:
                        stale.append((user_id, websocket))

        for user_id, websocket in stale:
            try:
                await websocket.close(code=1000, reason="Connection timeout")
            except Exception as e:
                logger.debug(f"Stale live connection already closed: {e}")
            await self.disconnect(user_id, websocket)
            logger.info(f"Cleaned up stale live connection for user {user_id}")
        return len(stale)


# Global WebSocket manager instance
_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """
    Get the global WebSocket manager instance.

    Returns:
        WebSocketManager instance
    """
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
