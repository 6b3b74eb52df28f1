"""
WebSocket endpoint for the caller's per-user live channel.

Every event addressed to a user (new group or direct message, unread count
changes) is pushed to all of that user's open connections. Messages are
sent through the REST API; the socket only carries server events and
keepalive pings.

Frames:
- Client -> Server: {"type": "ping"}
- Server -> Client: {"type": "pong"}, {"type": "connected", ...},
  {"event": <name>, "data": <payload>}
"""

import jwt
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, status

from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import decode_token_string
from workspace_chat.services.connection_manager import manager

router = APIRouter()
logger = get_logger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(..., description="JWT access token")
):
    """
    Subscribe to the caller's live channel.

    Authentication: JWT via query parameter, e.g.
    ws://localhost:8001/api/chat/ws?token=YOUR_ACCESS_TOKEN

    Invalid or expired tokens are closed with 1008 (policy violation)
    before the connection is accepted.
    """
    try:
        principal = decode_token_string(token)
    except jwt.InvalidTokenError as e:
        logger.warning("websocket_authentication_failed", error=str(e))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = principal.user_id
    await manager.connect(websocket, user_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "user_id": user_id,
            "company_id": principal.company_id,
        })

        while True:
            data = await websocket.receive_json()

            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                logger.debug(
                    "websocket_message_ignored",
                    user_id=user_id,
                    message_type=data.get("type", "unknown")
                )

    except WebSocketDisconnect:
        manager.disconnect(websocket, user_id)

    except Exception as e:
        logger.error(
            "websocket_error",
            error_type=type(e).__name__,
            error=str(e),
            user_id=user_id,
            exc_info=True
        )
        manager.disconnect(websocket, user_id, reason="error")
        try:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except Exception:
            logger.debug("websocket_close_failed", user_id=user_id)
