"""
Unit tests for the Access Guard and the direct conversation key.

Documents are built in memory; the test_db fixture only initializes Beanie.
"""

import pytest
from beanie import PydanticObjectId

from workspace_chat.core.access import (
    ensure_same_company,
    authorize_group_access,
    authorize_group_membership,
    authorize_group_message_delete,
    authorize_direct_participant,
    authorize_direct_delete,
    visible_counterpart_roles,
)
from workspace_chat.core.exceptions import NotFoundError, ForbiddenError
from workspace_chat.core.security import Principal
from workspace_chat.models.conversation import DirectConversationKey
from workspace_chat.models.group import Group, GroupMember
from workspace_chat.models.message import GroupMessage, DirectMessage
from workspace_chat.models.user import Role

from conftest import COMPANY, OTHER_COMPANY


def principal(user_id: str, role: Role = Role.EMPLOYEE, company_id: str = COMPANY) -> Principal:
    return Principal(user_id=user_id, role=role, company_id=company_id)


@pytest.fixture
def group(test_db) -> Group:
    return Group(
        id=PydanticObjectId(),
        company_id=COMPANY,
        name="Ops",
        created_by="admin-1",
        members=[GroupMember(user_id="admin-1"), GroupMember(user_id="emp-1")],
    )


@pytest.fixture
def group_message(group) -> GroupMessage:
    return GroupMessage(
        id=PydanticObjectId(),
        group_id=group.id,
        company_id=COMPANY,
        sender_id="emp-1",
        message_text="hello",
    )


@pytest.fixture
def direct_message(test_db) -> DirectMessage:
    key = DirectConversationKey.between("emp-1", "emp-2", COMPANY)
    return DirectMessage(
        id=PydanticObjectId(),
        conversation_key=str(key),
        sender_id="emp-1",
        receiver_id="emp-2",
        company_id=COMPANY,
        message_text="hi",
    )


class TestTenantScope:

    def test_same_company_passes(self):
        ensure_same_company(principal("emp-1"), COMPANY)

    def test_other_company_is_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            ensure_same_company(principal("emp-1", company_id=OTHER_COMPANY), COMPANY, "Group")
        assert exc_info.value.detail == "Group not found"

    async def test_foreign_admin_is_not_found_not_forbidden(self, group):
        with pytest.raises(NotFoundError):
            authorize_group_access(principal("outsider-admin", Role.ADMIN, OTHER_COMPANY), group)


class TestGroupAccess:

    async def test_member(self, group):
        authorize_group_access(principal("emp-1"), group)

    async def test_admin_without_membership(self, group):
        authorize_group_access(principal("admin-2", Role.ADMIN), group)

    async def test_employee_without_membership(self, group):
        with pytest.raises(ForbiddenError):
            authorize_group_access(principal("emp-2"), group)

    async def test_membership_operations_have_no_admin_bypass(self, group):
        authorize_group_membership(principal("emp-1"), group)
        with pytest.raises(ForbiddenError):
            authorize_group_membership(principal("admin-2", Role.ADMIN), group)


class TestGroupMessageDelete:

    async def test_sender(self, group, group_message):
        authorize_group_message_delete(principal("emp-1"), group, group_message)

    async def test_any_admin(self, group, group_message):
        authorize_group_message_delete(principal("admin-2", Role.ADMIN), group, group_message)

    async def test_other_member(self, group, group_message):
        group.members.append(GroupMember(user_id="emp-2"))
        with pytest.raises(ForbiddenError) as exc_info:
            authorize_group_message_delete(principal("emp-2"), group, group_message)
        assert exc_info.value.detail == "You don't have permission to delete this message"


class TestDirectAccess:

    async def test_participants(self, direct_message):
        authorize_direct_participant(principal("emp-1"), direct_message)
        authorize_direct_participant(principal("emp-2"), direct_message)

    async def test_bystander(self, direct_message):
        with pytest.raises(ForbiddenError):
            authorize_direct_participant(principal("emp-3"), direct_message)

    async def test_admins_get_no_bypass(self, direct_message):
        with pytest.raises(ForbiddenError):
            authorize_direct_participant(principal("admin-1", Role.ADMIN), direct_message)

    async def test_only_sender_deletes(self, direct_message):
        authorize_direct_delete(principal("emp-1"), direct_message)
        with pytest.raises(ForbiddenError) as exc_info:
            authorize_direct_delete(principal("emp-2"), direct_message)
        assert exc_info.value.detail == "You can only delete your own messages"


class TestCounterpartRoles:

    def test_admin_sees_employees(self):
        assert visible_counterpart_roles(principal("admin-1", Role.ADMIN)) == {Role.EMPLOYEE}

    def test_employee_sees_everyone(self):
        assert visible_counterpart_roles(principal("emp-1")) == {Role.ADMIN, Role.EMPLOYEE}


class TestDirectConversationKey:

    def test_order_independent(self):
        assert DirectConversationKey.between("b", "a", COMPANY) == DirectConversationKey.between("a", "b", COMPANY)
        assert str(DirectConversationKey.between("b", "a", COMPANY)) == f"{COMPANY}:a:b"

    def test_company_is_part_of_identity(self):
        assert DirectConversationKey.between("a", "b", COMPANY) != DirectConversationKey.between("a", "b", OTHER_COMPANY)
