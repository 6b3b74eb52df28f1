from typing import Dict, Set
from fastapi import WebSocket
import asyncio
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core import metrics

logger = get_logger(__name__)


class ConnectionManager:
    """
    Manages per-user live channels.

    Every authenticated WebSocket is registered under its user id; a user may
    hold several connections at once (multiple devices, tabs). Events are
    delivered to every connection of the target user.
    """

    def __init__(self):
        # user_id -> set of websockets
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    def _total(self) -> int:
        return sum(len(conns) for conns in self.active_connections.values())

    async def connect(self, websocket: WebSocket, user_id: str):
        """Accept and register a WebSocket connection for a user."""
        await websocket.accept()

        self.active_connections.setdefault(user_id, set()).add(websocket)

        metrics.websocket_connections_total.inc()
        metrics.websocket_connections_active.set(self._total())

        logger.info(
            "websocket_connected",
            user_id=user_id,
            user_connections=len(self.active_connections[user_id]),
        )

    def disconnect(self, websocket: WebSocket, user_id: str, reason: str = "normal"):
        """Unregister a WebSocket connection."""
        connections = self.active_connections.get(user_id)
        if connections is None or websocket not in connections:
            return

        connections.discard(websocket)
        if not connections:
            del self.active_connections[user_id]

        metrics.websocket_disconnections_total.labels(reason=reason).inc()
        metrics.websocket_connections_active.set(self._total())

        logger.info("websocket_disconnected", user_id=user_id, reason=reason)

    def is_connected(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    async def send_to_user(self, user_id: str, message: dict) -> int:
        """
        Send a message to every connection of a user.

        Connections that fail are dropped. Returns the number of connections
        the message reached; 0 means the user is offline.
        """
        connections = list(self.active_connections.get(user_id, ()))
        if not connections:
            return 0

        async def send_to_connection(websocket: WebSocket):
            try:
                await websocket.send_json(message)
                return websocket, None
            except Exception as e:
                return websocket, e

        results = await asyncio.gather(*[send_to_connection(conn) for conn in connections])

        delivered = 0
        for websocket, error in results:
            if error is None:
                delivered += 1
                continue
            logger.warning(
                "websocket_send_failed",
                user_id=user_id,
                error_type=type(error).__name__,
                error=str(error),
            )
            self.disconnect(websocket, user_id, reason="send_error")

        return delivered

    async def shutdown_all(self):
        """
        Gracefully shut down all WebSocket connections.

        Clients receive a server_shutdown notice before the close frame.
        """
        total_connections = self._total()

        if total_connections == 0:
            logger.info("websocket_shutdown", message="No active connections to close")
            return

        logger.info("websocket_shutdown_started", connection_count=total_connections)

        all_connections = [
            conn for connections in self.active_connections.values() for conn in connections
        ]

        async def close_connection(websocket: WebSocket):
            try:
                await websocket.send_json({
                    "event": "server_shutdown",
                    "data": {"message": "Server is restarting. Please reconnect in a few seconds."},
                })
                # 1001 Going Away
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug("websocket_shutdown_close_failed", error=str(e))

        await asyncio.gather(
            *[close_connection(conn) for conn in all_connections],
            return_exceptions=True
        )

        self.active_connections.clear()
        metrics.websocket_connections_active.set(0)
        logger.info("websocket_shutdown_completed", connections_closed=total_connections)


# Global connection manager instance
manager = ConnectionManager()
