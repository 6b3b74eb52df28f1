from beanie import Document
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional


class GroupMember(BaseModel):
    """Per-user membership and read state inside a group."""
    user_id: str
    joined_at: datetime = Field(default_factory=datetime.utcnow)
    unread_count: int = Field(default=0, ge=0)
    last_read_at: datetime = Field(default_factory=datetime.utcnow)
    is_muted: bool = False


class Group(Document):
    """
    MongoDB document for group conversations.

    Memberships are embedded so the whole member set is written by a single
    document update. Per-member counters are updated in place through the
    positional operator ("members.$.unread_count").

    Invariants:
    - members is unique by user_id (validated on every save)
    - last_activity_at only moves forward ($max)
    - total_messages only grows ($inc)
    """
    company_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    photo: Optional[str] = None
    members: List[GroupMember] = Field(default_factory=list)
    created_by: str
    is_active: bool = True
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)
    total_messages: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("members")
    @classmethod
    def members_unique_by_user(cls, members: List[GroupMember]) -> List[GroupMember]:
        seen = set()
        for member in members:
            if member.user_id in seen:
                raise ValueError(f"duplicate membership for user {member.user_id}")
            seen.add(member.user_id)
        return members

    class Settings:
        name = "groups"
        validate_on_save = True
        indexes = [
            [("company_id", 1), ("members.user_id", 1)],
            [("last_activity_at", -1)],
        ]

    @property
    def member_ids(self) -> List[str]:
        return [member.user_id for member in self.members]

    def get_member(self, user_id: str) -> Optional[GroupMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: str) -> bool:
        return self.get_member(user_id) is not None
