"""
FanOutDispatcher - best-effort live events and notifications after a write.

Every send is durable before the dispatcher runs. Nothing here may fail a
request: each emit and each notifier call is isolated, logged and counted on
failure, and never retried.

Live frames on the per-user channel:
    {"event": "group_message",       "data": <GroupMessageResponse>}
    {"event": "direct_message",      "data": <DirectMessageResponse>}
    {"event": "unread_count_update", "data": {"type": "group", "group_id": ..., "count": n}}
    {"event": "unread_count_update", "data": {"type": "direct", "user_id": ..., "count": n}}

unread_count_update frames are coalescable: consumers keep the last value.
"""

import asyncio
from typing import Any, Collection, Dict, Iterable

from workspace_chat.core import metrics
from workspace_chat.core.logging_config import get_logger
from workspace_chat.models.group import Group
from workspace_chat.models.message import MessageType
from workspace_chat.services.connection_manager import ConnectionManager
from workspace_chat.services.notifier import Notifier

logger = get_logger(__name__)

GROUP_MESSAGE_EVENT = "group_message"
DIRECT_MESSAGE_EVENT = "direct_message"
UNREAD_COUNT_EVENT = "unread_count_update"


class FanOutDispatcher:

    def __init__(self, connections: ConnectionManager, notifier: Notifier):
        self.connections = connections
        self.notifier = notifier

    async def emit(self, user_id: str, event: str, data: Dict[str, Any]) -> None:
        """Push one event to a user's live channel, if they are connected."""
        try:
            delivered = await self.connections.send_to_user(user_id, {"event": event, "data": data})
        except Exception as e:
            metrics.fanout_events_total.labels(event=event, outcome="failed").inc()
            logger.error(
                "fanout_emit_failed",
                event_name=event,
                user_id=user_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        outcome = "delivered" if delivered else "offline"
        metrics.fanout_events_total.labels(event=event, outcome=outcome).inc()

    async def notify(self, user_id: str, title: str, body: str, metadata: Dict[str, Any]) -> None:
        try:
            await self.notifier.notify(user_id, title, body, metadata)
        except Exception as e:
            metrics.notifications_total.labels(outcome="failed").inc()
            logger.error(
                "fanout_notify_failed",
                user_id=user_id,
                notification_type=metadata.get("type"),
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        metrics.notifications_total.labels(outcome="sent").inc()

    async def publish_group_message(
        self,
        group: Group,
        message: Dict[str, Any],
        recipients: Iterable[str],
        muted: Collection[str] = (),
    ) -> None:
        """
        Deliver a new group message to every recipient.

        Muted recipients still get the live event. System messages are never
        pushed as notifications.
        """
        recipients = list(recipients)
        notify = message.get("message_type") != MessageType.SYSTEM.value
        body = f"{message.get('sender_name', 'Unknown')}: {message.get('message_text', '')}"
        metadata = {
            "type": "group_chat",
            "group_id": str(group.id),
            "sender_id": message.get("sender_id"),
        }

        async def deliver(user_id: str) -> None:
            await self.emit(user_id, GROUP_MESSAGE_EVENT, message)
            if notify and user_id not in muted:
                await self.notify(user_id, group.name, body, metadata)

        await asyncio.gather(*[deliver(user_id) for user_id in recipients])

        logger.debug(
            "group_message_fanned_out",
            group_id=str(group.id),
            recipient_count=len(recipients),
            muted_count=len([uid for uid in recipients if uid in muted]),
        )

    async def publish_direct_message(
        self,
        message: Dict[str, Any],
        receiver_id: str,
        sender_name: str,
        sender_role: str,
    ) -> None:
        await self.emit(receiver_id, DIRECT_MESSAGE_EVENT, message)
        await self.notify(
            receiver_id,
            sender_name,
            message.get("message_text", ""),
            {
                "type": "direct_chat",
                "sender_id": message.get("sender_id"),
                "sender_name": sender_name,
                "sender_role": sender_role,
            },
        )

    async def publish_unread_counts(self, kind: str, key: str, counts: Dict[str, int]) -> None:
        """
        Emit one unread_count_update per affected member.

        kind is "group" (key = group id) or "direct" (key = the peer whose
        thread changed, from the receiving member's point of view).
        """
        key_field = "group_id" if kind == "group" else "user_id"
        await asyncio.gather(*[
            self.emit(user_id, UNREAD_COUNT_EVENT, {"type": kind, key_field: key, "count": count})
            for user_id, count in counts.items()
        ])
