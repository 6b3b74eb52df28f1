"""
MessageLog - append-only per-conversation message records.

Ordering:
    Timelines are ordered by created_at ascending. Pages are fetched
    newest-first and returned reversed (chronological). Messages created in
    the same millisecond fall back to _id order, i.e. the store's insertion
    order; no sequence number is assigned, so concurrent senders into one
    conversation have no stronger ordering guarantee.

Deletion:
    Individual messages are hard-deleted. Deleting a group soft-deletes
    (is_deleted=True) all of its messages, which are then filtered out of
    every read but retained for audit.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import Set

from workspace_chat.config import settings
from workspace_chat.core.exceptions import ValidationError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.models.group import Group
from workspace_chat.models.message import (
    GroupMessage,
    DirectMessage,
    MessageType,
    Attachment,
    ReplySnapshot,
)
from workspace_chat.models.conversation import DirectConversationKey

logger = get_logger(__name__)

# Newest first; _id breaks created_at ties in insertion order
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]

CLIENT_MESSAGE_TYPES = frozenset({MessageType.TEXT, MessageType.IMAGE, MessageType.FILE})


def normalize_text(text: Optional[str]) -> str:
    """
    Trim message text and enforce 1..MESSAGE_MAX_LENGTH characters.

    Raises:
        ValidationError: empty/whitespace-only or oversized text
    """
    trimmed = (text or "").strip()
    if not trimmed:
        raise ValidationError("Message text is required")
    if len(trimmed) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message too long (max {settings.MESSAGE_MAX_LENGTH} characters)")
    return trimmed


class MessageLog:

    # ------------------------------------------------------------------ groups

    async def append_group(
        self,
        group: Group,
        sender_id: str,
        text: str,
        message_type: MessageType = MessageType.TEXT,
        attachment: Optional[Attachment] = None,
        reply_to: Optional[ReplySnapshot] = None,
    ) -> GroupMessage:
        """
        Persist a group message and advance the group aggregate.

        The aggregate update (last_activity_at, total_messages) is a second,
        independent single-document write; the message is durable even if
        it fails.
        """
        message_text = normalize_text(text)
        now = datetime.utcnow()

        message = GroupMessage(
            group_id=group.id,
            company_id=group.company_id,
            sender_id=sender_id,
            message_text=message_text,
            message_type=message_type,
            attachment=attachment,
            reply_to=reply_to,
            created_at=now,
            updated_at=now,
        )
        await message.insert()

        await Group.find_one(Group.id == group.id).update({
            "$max": {"last_activity_at": now},
            "$inc": {"total_messages": 1},
        })

        logger.info(
            "group_message_appended",
            message_id=str(message.id),
            group_id=str(group.id),
            sender_id=sender_id,
            message_type=message_type.value,
        )
        return message

    async def append_system(self, group: Group, sender_id: str, text: str) -> GroupMessage:
        return await self.append_group(group, sender_id, text, message_type=MessageType.SYSTEM)

    async def page_group(
        self,
        group_id: PydanticObjectId,
        page: int,
        page_size: int,
    ) -> Tuple[List[GroupMessage], int]:
        query = GroupMessage.find(
            GroupMessage.group_id == group_id,
            GroupMessage.is_deleted == False,  # noqa: E712 - Beanie expression
        )
        total = await query.count()
        newest_first = await query.sort(NEWEST_FIRST).skip((page - 1) * page_size).limit(page_size).to_list()
        newest_first.reverse()
        return newest_first, total

    async def last_group_message(self, group_id: PydanticObjectId) -> Optional[GroupMessage]:
        messages = await GroupMessage.find(
            GroupMessage.group_id == group_id,
            GroupMessage.is_deleted == False,  # noqa: E712
        ).sort(NEWEST_FIRST).limit(1).to_list()
        return messages[0] if messages else None

    async def get_group_message(
        self,
        group_id: PydanticObjectId,
        message_id: PydanticObjectId,
    ) -> Optional[GroupMessage]:
        return await GroupMessage.find_one(
            GroupMessage.id == message_id,
            GroupMessage.group_id == group_id,
            GroupMessage.is_deleted == False,  # noqa: E712
        )

    async def soft_delete_group_messages(self, group_id: PydanticObjectId) -> None:
        await GroupMessage.find(GroupMessage.group_id == group_id).update(
            Set({GroupMessage.is_deleted: True, GroupMessage.updated_at: datetime.utcnow()})
        )
        logger.info("group_messages_soft_deleted", group_id=str(group_id))

    # ------------------------------------------------------------------ direct

    async def append_direct(
        self,
        key: DirectConversationKey,
        sender_id: str,
        receiver_id: str,
        text: str,
        message_type: MessageType = MessageType.TEXT,
        attachment: Optional[Attachment] = None,
        reply_to: Optional[ReplySnapshot] = None,
    ) -> DirectMessage:
        message_text = normalize_text(text)
        now = datetime.utcnow()

        message = DirectMessage(
            conversation_key=str(key),
            sender_id=sender_id,
            receiver_id=receiver_id,
            company_id=key.company_id,
            message_text=message_text,
            message_type=message_type,
            attachment=attachment,
            reply_to=reply_to,
            created_at=now,
            updated_at=now,
        )
        await message.insert()

        logger.info(
            "direct_message_appended",
            message_id=str(message.id),
            sender_id=sender_id,
            receiver_id=receiver_id,
            message_type=message_type.value,
        )
        return message

    async def page_direct(
        self,
        key: DirectConversationKey,
        page: int,
        page_size: int,
    ) -> Tuple[List[DirectMessage], int]:
        query = DirectMessage.find(
            DirectMessage.conversation_key == str(key),
            DirectMessage.is_deleted == False,  # noqa: E712
        )
        total = await query.count()
        newest_first = await query.sort(NEWEST_FIRST).skip((page - 1) * page_size).limit(page_size).to_list()
        newest_first.reverse()
        return newest_first, total

    async def last_direct_message(self, key: DirectConversationKey) -> Optional[DirectMessage]:
        messages = await DirectMessage.find(
            DirectMessage.conversation_key == str(key),
            DirectMessage.is_deleted == False,  # noqa: E712
        ).sort(NEWEST_FIRST).limit(1).to_list()
        return messages[0] if messages else None

    async def get_direct_message(self, message_id: PydanticObjectId) -> Optional[DirectMessage]:
        return await DirectMessage.find_one(
            DirectMessage.id == message_id,
            DirectMessage.is_deleted == False,  # noqa: E712
        )

    # ------------------------------------------------------------------ shared

    async def delete(self, message) -> None:
        """Hard delete: the record is physically removed."""
        await message.delete()
        logger.info(
            "message_hard_deleted",
            message_id=str(message.id),
            kind=type(message).__name__,
        )
