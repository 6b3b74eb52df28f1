"""
ConversationStore - group identity and membership lifecycle.

Groups are created and edited by admins, soft-deleted (is_active=False) with
a cascading soft delete of their messages, and left by members. Every write
is a single-document operation: the reconciled member set of an update is
written in one find_one_and_update, so it either lands whole or the request
fails.

Membership invariants:
- members is unique by user_id (model validation on every save)
- the creator is always a member: re-added on update, cannot leave
"""

from datetime import datetime
from typing import Dict, List, Optional

from beanie import PydanticObjectId, UpdateResponse

from workspace_chat.core import metrics
from workspace_chat.core.exceptions import ValidationError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import Principal
from workspace_chat.models.group import Group, GroupMember
from workspace_chat.services.message_log import MessageLog
from workspace_chat.services.user_directory import UserDirectory

logger = get_logger(__name__)


def unique_ids(user_ids: List[str]) -> List[str]:
    """Drop duplicates, keeping first occurrence order."""
    return list(dict.fromkeys(user_ids))


def fresh_member(user_id: str, now: datetime) -> GroupMember:
    return GroupMember(
        user_id=user_id,
        joined_at=now,
        unread_count=0,
        last_read_at=now,
        is_muted=False,
    )


def reconcile_members(
    existing: List[GroupMember],
    requested_ids: List[str],
    creator_id: str,
    now: datetime,
) -> List[GroupMember]:
    """
    Build the member set that results from an update request.

    - requested users already in the group keep their metadata
      (joined_at, unread_count, last_read_at, is_muted)
    - requested users not in the group get fresh metadata
    - the creator is force-included, with prior metadata when present
    - everyone else is dropped
    """
    previous: Dict[str, GroupMember] = {member.user_id: member for member in existing}
    wanted = unique_ids(list(requested_ids) + [creator_id])

    return [
        previous[user_id].model_copy() if user_id in previous else fresh_member(user_id, now)
        for user_id in wanted
    ]


class ConversationStore:

    def __init__(self, users: UserDirectory, messages: MessageLog):
        self.users = users
        self.messages = messages

    async def get_group(self, group_id: PydanticObjectId) -> Optional[Group]:
        return await Group.get(group_id)

    async def list_groups_for(self, user_id: str, company_id: str) -> List[Group]:
        """Active groups the user is a member of, most recently active first."""
        return await Group.find(
            {"members.user_id": user_id},
            Group.company_id == company_id,
            Group.is_active == True,  # noqa: E712 - Beanie expression
        ).sort(-Group.last_activity_at).to_list()

    async def _validate_member_ids(self, member_ids: List[str], creator_id: str, company_id: str) -> List[str]:
        """
        All-or-nothing validation of requested members.

        Every id other than the creator's must resolve to an active employee
        of the same company.

        Raises:
            ValidationError: when member_ids is empty or any id fails to resolve
        """
        if not member_ids:
            raise ValidationError("Group name and members are required")

        requested = unique_ids(member_ids)
        to_resolve = [user_id for user_id in requested if user_id != creator_id]
        resolved = await self.users.resolve_active_employees(to_resolve, company_id)

        if len(resolved) != len(to_resolve):
            resolved_ids = {user.id for user in resolved}
            logger.warning(
                "group_member_validation_failed",
                company_id=company_id,
                invalid_ids=[user_id for user_id in to_resolve if user_id not in resolved_ids],
            )
            raise ValidationError("Some selected employees are not valid")

        return requested

    async def create_group(
        self,
        principal: Principal,
        name: str,
        description: str,
        photo: Optional[str],
        member_ids: List[str],
    ) -> Group:
        requested = await self._validate_member_ids(member_ids, principal.user_id, principal.company_id)
        now = datetime.utcnow()

        group = Group(
            company_id=principal.company_id,
            name=name,
            description=description or "",
            photo=photo,
            members=[fresh_member(user_id, now) for user_id in unique_ids(requested + [principal.user_id])],
            created_by=principal.user_id,
            is_active=True,
            last_activity_at=now,
            total_messages=0,
            created_at=now,
            updated_at=now,
        )
        await group.insert()

        metrics.group_operations_total.labels(operation="create").inc()
        logger.info(
            "group_created",
            group_id=str(group.id),
            company_id=group.company_id,
            created_by=group.created_by,
            member_count=len(group.members),
        )
        return group

    async def update_group(
        self,
        group: Group,
        name: str,
        description: str,
        photo: Optional[str],
        member_ids: List[str],
    ) -> Group:
        """
        Apply an admin edit with membership reconciliation.

        Returns the updated document, or None if the group vanished meanwhile.

        Raises:
            ValidationError: invalid members
        """
        requested = await self._validate_member_ids(member_ids, group.created_by, group.company_id)
        now = datetime.utcnow()
        members = reconcile_members(group.members, requested, group.created_by, now)

        updated = await Group.find_one(Group.id == group.id).update(
            {
                "$set": {
                    "name": name,
                    "description": description or "",
                    "photo": photo,
                    "members": [member.model_dump() for member in members],
                    "updated_at": now,
                },
                "$max": {"last_activity_at": now},
            },
            response_type=UpdateResponse.NEW_DOCUMENT,
        )

        metrics.group_operations_total.labels(operation="update").inc()
        logger.info(
            "group_updated",
            group_id=str(group.id),
            member_count=len(members),
            added=[m.user_id for m in members if not group.is_member(m.user_id)],
            removed=[uid for uid in group.member_ids if uid not in {m.user_id for m in members}],
        )
        return updated

    async def delete_group(self, group: Group) -> None:
        """Soft delete plus cascading is_deleted=True on every message of the group."""
        now = datetime.utcnow()
        await Group.find_one(Group.id == group.id).update({
            "$set": {"is_active": False, "updated_at": now},
            "$max": {"last_activity_at": now},
        })
        await self.messages.soft_delete_group_messages(group.id)

        metrics.group_operations_total.labels(operation="delete").inc()
        logger.info("group_deleted", group_id=str(group.id), company_id=group.company_id)

    async def leave_group(self, group: Group, user_id: str) -> None:
        """
        Physically remove the user's membership.

        Raises:
            ValidationError: the creator tries to leave
        """
        if user_id == group.created_by:
            raise ValidationError("The group creator cannot leave the group")

        await Group.find_one(Group.id == group.id).update({
            "$pull": {"members": {"user_id": user_id}},
            "$set": {"updated_at": datetime.utcnow()},
        })

        metrics.group_operations_total.labels(operation="leave").inc()
        logger.info("group_member_left", group_id=str(group.id), user_id=user_id)
