"""
Notifier adapters for out-of-band (push) notifications.

The dispatcher only depends on the Notifier protocol. Which adapter backs it
is chosen from settings in dependencies.get_notifier().
"""

import re
from typing import Any, Dict, Optional, Protocol

import httpx

from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger, PerformanceLogger
from workspace_chat.models.user import User

logger = get_logger(__name__)

EXPO_TOKEN_PATTERN = re.compile(r"^Expo(nent)?PushToken\[.+\]$")


def is_expo_push_token(token: Optional[str]) -> bool:
    return bool(token) and EXPO_TOKEN_PATTERN.match(token) is not None


class Notifier(Protocol):

    async def notify(self, user_id: str, title: str, body: str, metadata: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Records notifications in the log only. Used when push is disabled."""

    async def notify(self, user_id: str, title: str, body: str, metadata: Dict[str, Any]) -> None:
        logger.info(
            "notification_logged",
            user_id=user_id,
            title=title,
            notification_type=metadata.get("type"),
        )


class ExpoPushNotifier:
    """
    Sends push notifications through the Expo push service.

    Users without a registered push token, or with a token that is not an
    Expo token, are skipped. Transport errors propagate to the caller.
    """

    def __init__(
        self,
        push_url: str = settings.EXPO_PUSH_URL,
        timeout: float = settings.PUSH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.push_url = push_url
        self.timeout = timeout
        self.transport = transport

    async def notify(self, user_id: str, title: str, body: str, metadata: Dict[str, Any]) -> None:
        user = await User.get(user_id)
        if user is None or not user.push_token:
            logger.debug("notification_skipped", user_id=user_id, reason="no_push_token")
            return

        if not is_expo_push_token(user.push_token):
            logger.warning("notification_skipped", user_id=user_id, reason="invalid_push_token")
            return

        payload = {
            "to": user.push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": metadata,
        }

        with PerformanceLogger("expo_push", logger, user_id=user_id):
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.push_url,
                    json=payload,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()

        logger.info("notification_sent", user_id=user_id, notification_type=metadata.get("type"))
