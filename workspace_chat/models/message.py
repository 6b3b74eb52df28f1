from beanie import Document, PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
from typing import Optional


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"  # Reserved for service-generated messages (e.g. member left)


class Attachment(BaseModel):
    """File or image payload attached to a message."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None
    data: Optional[str] = None  # Inline data URI; omitted from direct listings


class ReplySnapshot(BaseModel):
    """Copy of the replied-to message taken at send time."""
    message_id: str
    sender_name: str = ""
    message_text: str = ""


class GroupMessage(Document):
    """
    MongoDB document for group messages.

    company_id is copied from the owning group at append time so that every
    message carries its tenant.

    Indexes:
    - Compound (group_id, is_deleted, created_at): timeline reads
    - company_id: tenant-level maintenance
    - sender_id: user message history
    """
    group_id: PydanticObjectId
    company_id: str
    sender_id: str
    message_text: str = Field(..., min_length=1)
    message_type: MessageType = MessageType.TEXT
    attachment: Optional[Attachment] = None
    reply_to: Optional[ReplySnapshot] = None
    is_edited: bool = False
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "group_messages"
        indexes = [
            [("group_id", 1), ("is_deleted", 1), ("created_at", -1)],
            "company_id",
            "sender_id",
        ]


class DirectMessage(Document):
    """
    MongoDB document for one-to-one messages.

    There is no conversation document: conversation_key is the canonical
    "{company_id}:{low_user_id}:{high_user_id}" key of the unordered pair and
    is used for every thread query. read_at stays null until the receiver
    fetches the thread.
    """
    conversation_key: str
    sender_id: str
    receiver_id: str
    company_id: str
    message_text: str = Field(..., min_length=1)
    message_type: MessageType = MessageType.TEXT
    attachment: Optional[Attachment] = None
    reply_to: Optional[ReplySnapshot] = None
    is_edited: bool = False
    is_deleted: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "direct_messages"
        indexes = [
            [("conversation_key", 1), ("created_at", -1)],
            [("company_id", 1), ("receiver_id", 1), ("read_at", 1)],
        ]
