from pydantic import BaseModel, field_validator, ConfigDict
from datetime import datetime
from typing import List, Optional

from workspace_chat.models.message import (
    GroupMessage,
    DirectMessage,
    MessageType,
    Attachment,
    ReplySnapshot,
)
from workspace_chat.schemas.user import UserSummary
from workspace_chat.services.message_log import CLIENT_MESSAGE_TYPES


class MessageCreate(BaseModel):
    """
    Schema for sending a message.

    message_text is trimmed and length-checked by the message log so that
    group and direct sends share one rule.
    """
    message_text: str | None = None
    message_type: MessageType = MessageType.TEXT
    attachment: Attachment | None = None
    reply_to: ReplySnapshot | None = None

    @field_validator('message_type')
    @classmethod
    def client_type_only(cls, v: MessageType) -> MessageType:
        if v not in CLIENT_MESSAGE_TYPES:
            raise ValueError(f"message_type '{v.value}' cannot be sent by clients")
        return v


class GroupMessageResponse(BaseModel):
    """Schema for a group message, with the sender's display name."""
    id: str
    group_id: str
    company_id: str
    sender_id: str
    sender_name: str
    message_text: str
    message_type: MessageType
    attachment: Attachment | None = None
    reply_to: ReplySnapshot | None = None
    is_edited: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, message: GroupMessage, sender_name: str) -> "GroupMessageResponse":
        return cls(
            id=str(message.id),
            group_id=str(message.group_id),
            company_id=message.company_id,
            sender_id=message.sender_id,
            sender_name=sender_name,
            message_text=message.message_text,
            message_type=message.message_type,
            attachment=message.attachment,
            reply_to=message.reply_to,
            is_edited=message.is_edited,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )


class DirectMessageResponse(BaseModel):
    """
    Schema for a direct message.

    Listings leave attachment.data out (has_attachment stays true); the body
    is served by the attachment endpoint.
    """
    id: str
    sender_id: str
    receiver_id: str
    sender_name: str
    company_id: str
    message_text: str
    message_type: MessageType
    attachment: Attachment | None = None
    has_attachment: bool = False
    reply_to: ReplySnapshot | None = None
    is_edited: bool = False
    read_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(
        cls,
        message: DirectMessage,
        sender_name: str,
        include_attachment_data: bool = True,
    ) -> "DirectMessageResponse":
        attachment = message.attachment
        if attachment is not None and not include_attachment_data:
            attachment = attachment.model_copy(update={"data": None})

        return cls(
            id=str(message.id),
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            sender_name=sender_name,
            company_id=message.company_id,
            message_text=message.message_text,
            message_type=message.message_type,
            attachment=attachment,
            has_attachment=message.attachment is not None,
            reply_to=message.reply_to,
            is_edited=message.is_edited,
            read_at=message.read_at,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )


class MessageListResponse(BaseModel):
    """Schema for paginated group message list."""
    messages: List[GroupMessageResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class DirectMessageListResponse(BaseModel):
    """Schema for a paginated direct thread with one peer."""
    peer: UserSummary
    messages: List[DirectMessageResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class DirectPreview(BaseModel):
    message_text: str
    message_type: MessageType
    sender_id: str
    created_at: datetime


class ConversationSummary(BaseModel):
    user: UserSummary
    last_message: Optional[DirectPreview] = None
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]
    total: int


class AttachmentResponse(BaseModel):
    message_id: str
    attachment: Attachment
