"""
ReadStateManager - unread tracking for groups and direct conversations.

Groups keep one coarse cursor per membership: unread_count + last_read_at,
stored on the embedded member entry. Each member's counter is updated by its
own single-document write. These are unlocked counters: concurrent sends
into the same group may interleave with resets and a leave racing a send may
leave a stray update. That is accepted; the message log stays authoritative.

Direct conversations keep no counter. Unread state is always derived as
count(receiver=self, sender=peer, read_at IS NULL), and fetching a thread
marks every qualifying message read in one bulk update.
"""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, Optional

from beanie import PydanticObjectId
from beanie.operators import Set

from workspace_chat.core import metrics
from workspace_chat.core.logging_config import get_logger
from workspace_chat.models.conversation import DirectConversationKey
from workspace_chat.models.group import Group
from workspace_chat.models.message import DirectMessage

logger = get_logger(__name__)


def _member_filter(group_id: PydanticObjectId, user_id: str) -> dict:
    return {"_id": group_id, "members.user_id": user_id}


class ReadStateManager:

    # ------------------------------------------------------------------ groups

    async def increment_group_unread(
        self,
        group_id: PydanticObjectId,
        user_ids: Iterable[str],
    ) -> Dict[str, int]:
        """
        Increment unread_count by one for every given member.

        Updates run concurrently and independently. A failed update is
        logged and skipped (no retry) and never blocks the others.

        Returns:
            {user_id: unread_count read back after the update} for members
            that were updated. Users no longer in the group (e.g. left
            mid-send) are absent.
        """
        user_ids = list(user_ids)
        results = await asyncio.gather(
            *[self._increment_one(group_id, user_id) for user_id in user_ids]
        )
        return {
            user_id: count
            for user_id, count in zip(user_ids, results)
            if count is not None
        }

    async def _increment_one(self, group_id: PydanticObjectId, user_id: str) -> Optional[int]:
        try:
            result = await Group.find_one(_member_filter(group_id, user_id)).update(
                {"$inc": {"members.$.unread_count": 1}}
            )
            group = await Group.get(group_id) if result and result.matched_count else None
        except Exception as e:
            metrics.unread_updates_total.labels(status="failed").inc()
            logger.error(
                "unread_increment_failed",
                group_id=str(group_id),
                user_id=user_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        if group is None:
            metrics.unread_updates_total.labels(status="skipped").inc()
            logger.info("unread_increment_skipped", group_id=str(group_id), user_id=user_id, reason="not_member")
            return None

        metrics.unread_updates_total.labels(status="success").inc()
        member = group.get_member(user_id)
        return member.unread_count if member else None

    async def reset_group_unread(
        self,
        group_id: PydanticObjectId,
        user_id: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Set the member's unread_count to 0 and last_read_at to `at`. Returns False for non-members."""
        at = at or datetime.utcnow()
        result = await Group.find_one(_member_filter(group_id, user_id)).update({
            "$set": {
                "members.$.unread_count": 0,
                "members.$.last_read_at": at,
            }
        })
        matched = bool(result and result.matched_count)
        logger.debug("unread_reset", group_id=str(group_id), user_id=user_id, matched=matched)
        return matched

    async def set_muted(self, group_id: PydanticObjectId, user_id: str, muted: bool) -> Optional[Group]:
        """Toggle the member's mute flag. Returns the updated group, or None for non-members."""
        result = await Group.find_one(_member_filter(group_id, user_id)).update(
            {"$set": {"members.$.is_muted": muted}}
        )
        if not (result and result.matched_count):
            return None
        return await Group.get(group_id)

    # ------------------------------------------------------------------ direct

    async def direct_unread_count(self, company_id: str, receiver_id: str, sender_id: str) -> int:
        return await DirectMessage.find(
            DirectMessage.company_id == company_id,
            DirectMessage.receiver_id == receiver_id,
            DirectMessage.sender_id == sender_id,
            DirectMessage.read_at == None,  # noqa: E711 - Beanie expression
            DirectMessage.is_deleted == False,  # noqa: E712
        ).count()

    async def mark_direct_read(
        self,
        key: DirectConversationKey,
        reader_id: str,
        at: Optional[datetime] = None,
    ) -> None:
        """Bulk-acknowledge every unread message addressed to the reader in this thread."""
        at = at or datetime.utcnow()
        await DirectMessage.find(
            DirectMessage.conversation_key == str(key),
            DirectMessage.receiver_id == reader_id,
            DirectMessage.read_at == None,  # noqa: E711
            DirectMessage.is_deleted == False,  # noqa: E712
        ).update(Set({DirectMessage.read_at: at}))
        logger.debug("direct_thread_marked_read", reader_id=reader_id, conversation_key=str(key))
