"""
Access Guard: tenant isolation and membership/role authorization.

Rule table:
- Group read / manage: active member OR admin
- Group leave / mute:  member only (admins get no bypass on their own membership)
- Group message delete: admin OR original sender (after group access)
- Direct message read: sender or receiver
- Direct message delete: sender only

Cross-tenant references always resolve as NotFoundError, never
ForbiddenError, so callers cannot probe other companies for existence.
"""

from typing import FrozenSet

from workspace_chat.core.exceptions import NotFoundError, ForbiddenError
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.security import Principal
from workspace_chat.models.group import Group
from workspace_chat.models.message import GroupMessage, DirectMessage
from workspace_chat.models.user import Role

logger = get_logger(__name__)


def ensure_same_company(principal: Principal, company_id: str, label: str = "Resource") -> None:
    if company_id != principal.company_id:
        logger.warning(
            "cross_company_access_blocked",
            user_id=principal.user_id,
            principal_company_id=principal.company_id,
            resource_company_id=company_id,
            resource=label,
            security_violation=True,
        )
        raise NotFoundError(f"{label} not found")


def authorize_group_access(principal: Principal, group: Group) -> None:
    """Read and manage access: member, or any admin of the same company."""
    ensure_same_company(principal, group.company_id, "Group")

    if principal.is_admin or group.is_member(principal.user_id):
        return

    logger.warning(
        "group_access_denied",
        group_id=str(group.id),
        user_id=principal.user_id,
        reason="not_member",
    )
    raise ForbiddenError("Access denied to this group")


def authorize_group_membership(principal: Principal, group: Group) -> None:
    """Operations on the caller's own membership (leave, mute)."""
    ensure_same_company(principal, group.company_id, "Group")

    if not group.is_member(principal.user_id):
        logger.warning(
            "group_membership_required",
            group_id=str(group.id),
            user_id=principal.user_id,
        )
        raise ForbiddenError("Access denied to this group")


def authorize_group_message_delete(principal: Principal, group: Group, message: GroupMessage) -> None:
    authorize_group_access(principal, group)

    if principal.is_admin or message.sender_id == principal.user_id:
        return

    logger.warning(
        "group_message_delete_denied",
        message_id=str(message.id),
        message_sender_id=message.sender_id,
        requesting_user_id=principal.user_id,
        reason="not_owner_and_not_admin",
    )
    raise ForbiddenError("You don't have permission to delete this message")


def authorize_direct_participant(principal: Principal, message: DirectMessage) -> None:
    ensure_same_company(principal, message.company_id, "Message")

    if principal.user_id in (message.sender_id, message.receiver_id):
        return

    logger.warning(
        "direct_message_access_denied",
        message_id=str(message.id),
        user_id=principal.user_id,
    )
    raise ForbiddenError("Access denied")


def authorize_direct_delete(principal: Principal, message: DirectMessage) -> None:
    authorize_direct_participant(principal, message)

    if message.sender_id != principal.user_id:
        raise ForbiddenError("You can only delete your own messages")


def visible_counterpart_roles(principal: Principal) -> FrozenSet[Role]:
    """Roles a principal may open direct conversations with."""
    role = principal.role
    if role is Role.ADMIN:
        return frozenset({Role.EMPLOYEE})
    if role is Role.EMPLOYEE:
        return frozenset({Role.ADMIN, Role.EMPLOYEE})
    raise ValueError(f"Unhandled role: {role!r}")
