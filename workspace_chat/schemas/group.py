from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Dict, List, Optional

from workspace_chat.models.group import Group, GroupMember
from workspace_chat.models.message import MessageType
from workspace_chat.models.user import User, Role


class GroupCreate(BaseModel):
    """Schema for creating a new group."""
    name: str = Field(..., max_length=100)
    description: str = Field(default="", max_length=500)
    photo: str | None = None
    member_ids: List[str] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Group name and members are required")
        return v


class GroupUpdate(GroupCreate):
    """
    Schema for updating a group.

    Full replacement: member_ids is the complete desired member set and is
    reconciled against the current one.
    """


class MuteUpdate(BaseModel):
    is_muted: bool


class MemberResponse(BaseModel):
    """Membership metadata joined with the member's directory entry."""
    user_id: str
    name: str
    email: str | None = None
    role: Role | None = None
    avatar: str | None = None
    joined_at: datetime
    unread_count: int
    last_read_at: datetime
    is_muted: bool

    @classmethod
    def from_member(cls, member: GroupMember, user: Optional[User]) -> "MemberResponse":
        return cls(
            user_id=member.user_id,
            name=user.display_name if user else "Unknown",
            email=user.email if user else None,
            role=user.role if user else None,
            avatar=user.avatar if user else None,
            joined_at=member.joined_at,
            unread_count=member.unread_count,
            last_read_at=member.last_read_at,
            is_muted=member.is_muted,
        )


class GroupResponse(BaseModel):
    """Schema for a group with populated members."""
    id: str
    company_id: str
    name: str
    description: str
    photo: str | None = None
    members: List[MemberResponse]
    created_by: str
    is_active: bool
    last_activity_at: datetime
    total_messages: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, group: Group, users: Dict[str, User]) -> "GroupResponse":
        return cls(
            id=str(group.id),
            company_id=group.company_id,
            name=group.name,
            description=group.description,
            photo=group.photo,
            members=[MemberResponse.from_member(m, users.get(m.user_id)) for m in group.members],
            created_by=group.created_by,
            is_active=group.is_active,
            last_activity_at=group.last_activity_at,
            total_messages=group.total_messages,
            created_at=group.created_at,
            updated_at=group.updated_at,
        )


class LastMessagePreview(BaseModel):
    message_text: str
    message_type: MessageType
    sender_id: str
    sender_name: str
    created_at: datetime


class GroupSummaryResponse(BaseModel):
    """One entry of the caller's group list, with their own read state."""
    id: str
    name: str
    description: str
    photo: str | None = None
    member_count: int
    created_by: str
    last_activity_at: datetime
    total_messages: int
    last_message: LastMessagePreview | None = None
    unread_count: int = 0
    is_muted: bool = False


class GroupListResponse(BaseModel):
    """Schema for group list."""
    groups: List[GroupSummaryResponse]
    total: int
