"""
GroupService - group channel operations for one principal.

Control flow of a send:
    Access Guard -> MessageLog.append_group (message + group aggregate)
    -> ReadStateManager.increment_group_unread (every member but the sender)
    -> FanOutDispatcher (live event, notification, unread updates)
    -> response

Only the append decides success. Everything after it is best-effort and
never turns a persisted message into an error response.

Tenant isolation:
- Every group is loaded and then checked against the principal's company;
  a group of another company is reported as "Group not found".
- Deleted (inactive) groups can still be read by their members, but every
  write on them answers "Group not found".
"""

import asyncio
import time
from typing import List, Optional

from beanie import PydanticObjectId

from workspace_chat.core import metrics
from workspace_chat.core.access import (
    ensure_same_company,
    authorize_group_access,
    authorize_group_membership,
    authorize_group_message_delete,
)
from workspace_chat.core.exceptions import NotFoundError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import Principal
from workspace_chat.models.group import Group
from workspace_chat.models.message import GroupMessage
from workspace_chat.schemas.group import (
    GroupCreate,
    GroupUpdate,
    GroupResponse,
    GroupSummaryResponse,
    GroupListResponse,
    LastMessagePreview,
)
from workspace_chat.schemas.message import MessageCreate, GroupMessageResponse, MessageListResponse
from workspace_chat.schemas.user import UserSummary, EmployeeListResponse
from workspace_chat.services.conversation_store import ConversationStore
from workspace_chat.services.dispatcher import FanOutDispatcher
from workspace_chat.services.message_log import MessageLog
from workspace_chat.services.read_state import ReadStateManager
from workspace_chat.services.user_directory import UserDirectory

logger = get_logger(__name__)


class GroupService:

    def __init__(
        self,
        store: ConversationStore,
        messages: MessageLog,
        read_state: ReadStateManager,
        users: UserDirectory,
        dispatcher: FanOutDispatcher,
    ):
        self.store = store
        self.messages = messages
        self.read_state = read_state
        self.users = users
        self.dispatcher = dispatcher

    async def _load_group(
        self,
        principal: Principal,
        group_id: PydanticObjectId,
        require_active: bool = True,
    ) -> Group:
        """
        Fetch a group of the principal's company.

        Raises:
            NotFoundError: absent, other company, or inactive when require_active
        """
        group = await self.store.get_group(group_id)
        if group is None:
            raise NotFoundError("Group not found")

        ensure_same_company(principal, group.company_id, "Group")

        if require_active and not group.is_active:
            raise NotFoundError("Group not found")

        return group

    async def _render_group(self, group: Group) -> GroupResponse:
        users = await self.users.get_users(group.member_ids)
        return GroupResponse.from_model(group, users)

    async def _fan_out(self, group: Group, message: GroupMessage, sender_name: str) -> None:
        """Unread increments and live/notification delivery to everyone but the sender."""
        recipients = [user_id for user_id in group.member_ids if user_id != message.sender_id]
        muted = {member.user_id for member in group.members if member.is_muted}
        payload = GroupMessageResponse.from_model(message, sender_name).model_dump(mode="json")

        counts = await self.read_state.increment_group_unread(group.id, recipients)
        await self.dispatcher.publish_group_message(group, payload, recipients, muted)
        await self.dispatcher.publish_unread_counts("group", str(group.id), counts)

    # ------------------------------------------------------------------ groups

    async def create_group(self, principal: Principal, data: GroupCreate) -> GroupResponse:
        group = await self.store.create_group(
            principal,
            name=data.name,
            description=data.description,
            photo=data.photo,
            member_ids=data.member_ids,
        )
        return await self._render_group(group)

    async def list_groups(self, principal: Principal) -> GroupListResponse:
        """
        The caller's active groups, most recently active first.

        Each entry carries the latest message preview and the caller's own
        unread_count / is_muted.
        """
        groups = await self.store.list_groups_for(principal.user_id, principal.company_id)
        last_messages: List[Optional[GroupMessage]] = await asyncio.gather(
            *[self.messages.last_group_message(group.id) for group in groups]
        )
        names = await self.users.display_names(
            message.sender_id for message in last_messages if message is not None
        )

        summaries = []
        for group, last in zip(groups, last_messages):
            member = group.get_member(principal.user_id)
            preview = None
            if last is not None:
                preview = LastMessagePreview(
                    message_text=last.message_text,
                    message_type=last.message_type,
                    sender_id=last.sender_id,
                    sender_name=names.get(last.sender_id, "Unknown"),
                    created_at=last.created_at,
                )
            summaries.append(GroupSummaryResponse(
                id=str(group.id),
                name=group.name,
                description=group.description,
                photo=group.photo,
                member_count=len(group.members),
                created_by=group.created_by,
                last_activity_at=group.last_activity_at,
                total_messages=group.total_messages,
                last_message=preview,
                unread_count=member.unread_count if member else 0,
                is_muted=member.is_muted if member else False,
            ))

        return GroupListResponse(groups=summaries, total=len(summaries))

    async def get_group(self, principal: Principal, group_id: PydanticObjectId) -> GroupResponse:
        group = await self._load_group(principal, group_id, require_active=False)
        authorize_group_access(principal, group)
        return await self._render_group(group)

    async def update_group(
        self,
        principal: Principal,
        group_id: PydanticObjectId,
        data: GroupUpdate,
    ) -> GroupResponse:
        group = await self._load_group(principal, group_id)
        authorize_group_access(principal, group)

        updated = await self.store.update_group(
            group,
            name=data.name,
            description=data.description,
            photo=data.photo,
            member_ids=data.member_ids,
        )
        if updated is None:
            raise NotFoundError("Group not found")
        return await self._render_group(updated)

    async def delete_group(self, principal: Principal, group_id: PydanticObjectId) -> None:
        group = await self._load_group(principal, group_id)
        authorize_group_access(principal, group)
        await self.store.delete_group(group)

    async def leave_group(self, principal: Principal, group_id: PydanticObjectId) -> None:
        """
        Remove the caller from the group and announce it.

        The announcement is a system message from the leaver; it counts as
        unread for every remaining member and is delivered live, but it is
        never pushed as a notification.
        """
        group = await self._load_group(principal, group_id)
        authorize_group_membership(principal, group)

        await self.store.leave_group(group, principal.user_id)

        name = await self.users.display_name(principal.user_id)
        announcement = await self.messages.append_system(group, principal.user_id, f"{name} left the group")
        metrics.messages_created_total.labels(kind="group", message_type="system").inc()

        # The leaver is the sender, so fan-out only reaches the remaining members
        await self._fan_out(group, announcement, name)

    async def set_muted(self, principal: Principal, group_id: PydanticObjectId, is_muted: bool) -> GroupResponse:
        group = await self._load_group(principal, group_id)
        authorize_group_membership(principal, group)

        updated = await self.read_state.set_muted(group.id, principal.user_id, is_muted)
        if updated is None:
            raise NotFoundError("Group not found")

        logger.info("group_mute_changed", group_id=str(group.id), user_id=principal.user_id, is_muted=is_muted)
        return await self._render_group(updated)

    # ---------------------------------------------------------------- messages

    async def list_messages(
        self,
        principal: Principal,
        group_id: PydanticObjectId,
        page: int,
        page_size: int,
    ) -> MessageListResponse:
        """
        One page of the timeline, chronological.

        Resets the caller's unread counter regardless of the page returned.
        """
        group = await self._load_group(principal, group_id, require_active=False)
        authorize_group_access(principal, group)

        messages, total = await self.messages.page_group(group.id, page, page_size)
        names = await self.users.display_names(message.sender_id for message in messages)

        if await self.read_state.reset_group_unread(group.id, principal.user_id):
            await self.dispatcher.publish_unread_counts("group", str(group.id), {principal.user_id: 0})

        logger.info(
            "group_messages_fetched",
            group_id=str(group.id),
            user_id=principal.user_id,
            page=page,
            page_size=page_size,
            total=total,
            returned=len(messages),
        )

        return MessageListResponse(
            messages=[GroupMessageResponse.from_model(m, names.get(m.sender_id, "Unknown")) for m in messages],
            total=total,
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
        )

    async def send_message(
        self,
        principal: Principal,
        group_id: PydanticObjectId,
        data: MessageCreate,
    ) -> GroupMessageResponse:
        start_time = time.time()

        try:
            group = await self._load_group(principal, group_id)
            authorize_group_access(principal, group)

            message = await self.messages.append_group(
                group,
                principal.user_id,
                data.message_text,
                message_type=data.message_type,
                attachment=data.attachment,
                reply_to=data.reply_to,
            )
            metrics.messages_created_total.labels(kind="group", message_type=message.message_type.value).inc()

            sender_name = await self.users.display_name(principal.user_id)
            await self._fan_out(group, message, sender_name)

            return GroupMessageResponse.from_model(message, sender_name)

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
                kind="group"
            ).observe(duration)

    async def delete_message(
        self,
        principal: Principal,
        group_id: PydanticObjectId,
        message_id: PydanticObjectId,
    ) -> None:
        group = await self._load_group(principal, group_id, require_active=False)

        message = await self.messages.get_group_message(group.id, message_id)
        if message is None:
            raise NotFoundError("Message not found")

        authorize_group_message_delete(principal, group, message)

        await self.messages.delete(message)
        metrics.messages_deleted_total.labels(kind="group").inc()

        logger.info(
            "group_message_deleted",
            message_id=str(message_id),
            group_id=str(group.id),
            deleted_by=principal.user_id,
        )

    # --------------------------------------------------------------- directory

    async def list_employees(self, principal: Principal) -> EmployeeListResponse:
        employees = await self.users.list_employees(principal.company_id)
        return EmployeeListResponse(
            employees=[UserSummary.from_model(user) for user in employees],
            total=len(employees),
        )

