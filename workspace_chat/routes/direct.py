from fastapi import APIRouter, Depends, status, Query, Request, Response
from beanie import PydanticObjectId

from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.rate_limit import limiter
from workspace_chat.core.security import Principal, get_current_principal
from workspace_chat.dependencies import get_direct_service
from workspace_chat.schemas.message import (
    MessageCreate,
    DirectMessageResponse,
    DirectMessageListResponse,
    ConversationListResponse,
    AttachmentResponse,
)
from workspace_chat.services.direct_service import DirectMessageService

router = APIRouter()
logger = get_logger(__name__)


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    principal: Principal = Depends(get_current_principal),
    service: DirectMessageService = Depends(get_direct_service)
):
    """
    Everyone the caller can message, with last message and unread count.

    Sorted by unread count, then by most recent message.
    """
    return await service.list_conversations(principal)


@router.get("/messages/{user_id}", response_model=DirectMessageListResponse)
async def get_direct_messages(
    user_id: str,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Messages per page"),
    principal: Principal = Depends(get_current_principal),
    service: DirectMessageService = Depends(get_direct_service)
):
    """
    Get the thread with another user, oldest first within the page.

    Side effect: every unread message from that user is marked read.
    Attachment bodies are left out; fetch them from the attachment endpoint.
    """
    return await service.list_messages(principal, user_id, page, page_size)


@router.post(
    "/messages/{user_id}",
    response_model=DirectMessageResponse,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit(settings.RATE_LIMIT_SEND)
async def send_direct_message(
    request: Request,
    user_id: str,
    data: MessageCreate,
    principal: Principal = Depends(get_current_principal),
    service: DirectMessageService = Depends(get_direct_service)
):
    logger.info(
        "api_send_direct_message",
        sender_id=principal.user_id,
        receiver_id=user_id,
        message_type=data.message_type.value
    )
    return await service.send_message(principal, user_id, data)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_direct_message(
    message_id: PydanticObjectId,
    principal: Principal = Depends(get_current_principal),
    service: DirectMessageService = Depends(get_direct_service)
):
    """Permanently delete one of your own messages."""
    await service.delete_message(principal, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/messages/{message_id}/attachment", response_model=AttachmentResponse)
async def get_direct_attachment(
    message_id: PydanticObjectId,
    principal: Principal = Depends(get_current_principal),
    service: DirectMessageService = Depends(get_direct_service)
):
    """Full attachment body of a message (sender or receiver only)."""
    return await service.get_attachment(principal, message_id)
