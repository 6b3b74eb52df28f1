"""
DirectMessageService - one-to-one conversations within a company.

A conversation is not stored; it is the set of messages sharing the
canonical key of an unordered user pair. Unread state is derived from
read_at on every request.

Counterpart visibility:
- admins see employees only
- employees see everyone else in their company
"""

import asyncio
import time
from datetime import datetime
from typing import List

from beanie import PydanticObjectId

from workspace_chat.core import metrics
from workspace_chat.core.access import authorize_direct_participant, authorize_direct_delete
from workspace_chat.core.exceptions import NotFoundError, ValidationError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import Principal
from workspace_chat.models.conversation import DirectConversationKey
from workspace_chat.models.user import User
from workspace_chat.schemas.message import (
    MessageCreate,
    DirectMessageResponse,
    DirectMessageListResponse,
    DirectPreview,
    ConversationSummary,
    ConversationListResponse,
    AttachmentResponse,
)
from workspace_chat.schemas.user import UserSummary
from workspace_chat.services.dispatcher import FanOutDispatcher
from workspace_chat.services.message_log import MessageLog, normalize_text
from workspace_chat.services.read_state import ReadStateManager
from workspace_chat.services.user_directory import UserDirectory

logger = get_logger(__name__)


def sort_conversations(conversations: List[ConversationSummary]) -> List[ConversationSummary]:
    """Unread count desc, then last message time desc; threads without messages last."""
    def last_activity(conversation: ConversationSummary) -> datetime:
        return conversation.last_message.created_at if conversation.last_message else datetime.min

    by_recency = sorted(conversations, key=last_activity, reverse=True)
    return sorted(by_recency, key=lambda c: c.unread_count, reverse=True)


class DirectMessageService:

    def __init__(
        self,
        messages: MessageLog,
        read_state: ReadStateManager,
        users: UserDirectory,
        dispatcher: FanOutDispatcher,
    ):
        self.messages = messages
        self.read_state = read_state
        self.users = users
        self.dispatcher = dispatcher

    async def _resolve_peer(self, principal: Principal, user_id: str) -> User:
        peer = await self.users.get_user(user_id, principal.company_id)
        if peer is None:
            raise NotFoundError("User not found")
        return peer

    async def _summarize(self, principal: Principal, peer: User) -> ConversationSummary:
        key = DirectConversationKey.between(principal.user_id, peer.id, principal.company_id)
        last, unread = await asyncio.gather(
            self.messages.last_direct_message(key),
            self.read_state.direct_unread_count(principal.company_id, principal.user_id, peer.id),
        )
        preview = None
        if last is not None:
            preview = DirectPreview(
                message_text=last.message_text,
                message_type=last.message_type,
                sender_id=last.sender_id,
                created_at=last.created_at,
            )
        return ConversationSummary(user=UserSummary.from_model(peer), last_message=preview, unread_count=unread)

    async def list_conversations(self, principal: Principal) -> ConversationListResponse:
        counterparts = await self.users.list_counterparts(principal)
        summaries = await asyncio.gather(*[self._summarize(principal, peer) for peer in counterparts])
        conversations = sort_conversations(list(summaries))
        return ConversationListResponse(conversations=conversations, total=len(conversations))

    async def list_messages(
        self,
        principal: Principal,
        user_id: str,
        page: int,
        page_size: int,
    ) -> DirectMessageListResponse:
        """
        One page of the thread with a peer, chronological.

        Every unread message from the peer is marked read after the page is
        read, so the returned page still shows the pre-fetch read_at values.
        """
        peer = await self._resolve_peer(principal, user_id)
        key = DirectConversationKey.between(principal.user_id, peer.id, principal.company_id)

        messages, total = await self.messages.page_direct(key, page, page_size)
        await self.read_state.mark_direct_read(key, principal.user_id)
        await self.dispatcher.publish_unread_counts("direct", peer.id, {principal.user_id: 0})

        names = await self.users.display_names([principal.user_id, peer.id])

        return DirectMessageListResponse(
            peer=UserSummary.from_model(peer),
            messages=[
                DirectMessageResponse.from_model(
                    m,
                    names.get(m.sender_id, "Unknown"),
                    include_attachment_data=False,
                )
                for m in messages
            ],
            total=total,
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
        )

    async def send_message(self, principal: Principal, user_id: str, data: MessageCreate) -> DirectMessageResponse:
        start_time = time.time()

        try:
            text = normalize_text(data.message_text)

            if user_id == principal.user_id:
                raise ValidationError("You cannot send a message to yourself")

            peer = await self._resolve_peer(principal, user_id)
            key = DirectConversationKey.between(principal.user_id, peer.id, principal.company_id)

            message = await self.messages.append_direct(
                key,
                principal.user_id,
                peer.id,
                text,
                message_type=data.message_type,
                attachment=data.attachment,
                reply_to=data.reply_to,
            )
            metrics.messages_created_total.labels(kind="direct", message_type=message.message_type.value).inc()

            sender_name = await self.users.display_name(principal.user_id)
            response = DirectMessageResponse.from_model(message, sender_name)

            await self.dispatcher.publish_direct_message(
                response.model_dump(mode="json"),
                receiver_id=peer.id,
                sender_name=sender_name,
                sender_role=principal.role.value,
            )
            await self._publish_receiver_unread(principal, peer.id)

            return response

        except Exception as e:
            metrics.message_operation_errors_total.labels(
                operation="send",
                error_type=type(e).__name__
            ).inc()
            raise

        finally:
            duration = time.time() - start_time
            metrics.message_operation_duration_seconds.labels(
                operation="send",
                kind="direct"
            ).observe(duration)

    async def _publish_receiver_unread(self, principal: Principal, receiver_id: str) -> None:
        """Tell the receiver how many unread messages they now have from the sender."""
        try:
            count = await self.read_state.direct_unread_count(principal.company_id, receiver_id, principal.user_id)
        except Exception as e:
            logger.error(
                "fanout_unread_count_failed",
                receiver_id=receiver_id,
                sender_id=principal.user_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return

        await self.dispatcher.publish_unread_counts("direct", principal.user_id, {receiver_id: count})

    async def delete_message(self, principal: Principal, message_id: PydanticObjectId) -> None:
        message = await self.messages.get_direct_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")

        authorize_direct_delete(principal, message)

        await self.messages.delete(message)
        metrics.messages_deleted_total.labels(kind="direct").inc()
        logger.info("direct_message_deleted", message_id=str(message_id), deleted_by=principal.user_id)

    async def get_attachment(self, principal: Principal, message_id: PydanticObjectId) -> AttachmentResponse:
        message = await self.messages.get_direct_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")

        authorize_direct_participant(principal, message)

        if message.attachment is None:
            raise NotFoundError("Attachment not found")

        return AttachmentResponse(message_id=str(message.id), attachment=message.attachment)
