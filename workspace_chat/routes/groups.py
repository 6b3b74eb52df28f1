from fastapi import APIRouter, Depends, status, Query, Request, Response
from beanie import PydanticObjectId

from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger
from workspace_chat.core.rate_limit import limiter
from workspace_chat.core.security import Principal, get_current_principal, require_admin
from workspace_chat.dependencies import get_group_service
from workspace_chat.schemas.group import (
    GroupCreate,
    GroupUpdate,
    GroupResponse,
    GroupListResponse,
    MuteUpdate,
)
from workspace_chat.schemas.message import MessageCreate, GroupMessageResponse, MessageListResponse
from workspace_chat.schemas.user import EmployeeListResponse
from workspace_chat.services.group_service import GroupService

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_group(
    data: GroupCreate,
    principal: Principal = Depends(require_admin),
    service: GroupService = Depends(get_group_service)
):
    """
    Create a group channel (admin only).

    Every member id must be an active employee of the caller's company;
    the caller is added as a member automatically.
    """
    logger.info(
        "api_create_group",
        user_id=principal.user_id,
        company_id=principal.company_id,
        requested_members=len(data.member_ids)
    )
    return await service.create_group(principal, data)


@router.get("/groups", response_model=GroupListResponse)
async def list_groups(
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """Active groups the caller is a member of, most recently active first."""
    return await service.list_groups(principal)


@router.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: PydanticObjectId,
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    return await service.get_group(principal, group_id)


@router.put("/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: PydanticObjectId,
    data: GroupUpdate,
    principal: Principal = Depends(require_admin),
    service: GroupService = Depends(get_group_service)
):
    """
    Replace name, description, photo and member set (admin only).

    Members that stay keep their read state and mute flag; new members
    start fresh; the creator can never be removed.
    """
    logger.info("api_update_group", group_id=str(group_id), user_id=principal.user_id)
    return await service.update_group(principal, group_id, data)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: PydanticObjectId,
    principal: Principal = Depends(require_admin),
    service: GroupService = Depends(get_group_service)
):
    """Soft delete the group and all of its messages (admin only)."""
    logger.info("api_delete_group", group_id=str(group_id), user_id=principal.user_id)
    await service.delete_group(principal, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/groups/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_group(
    group_id: PydanticObjectId,
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """
    Leave a group you are a member of.

    The remaining members get a "<name> left the group" system message.
    The group's creator is always a member and cannot leave (400); delete
    the group instead.
    """
    logger.info("api_leave_group", group_id=str(group_id), user_id=principal.user_id)
    await service.leave_group(principal, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/groups/{group_id}/mute", response_model=GroupResponse)
async def set_group_muted(
    group_id: PydanticObjectId,
    data: MuteUpdate,
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """Mute or unmute notifications for the caller. Live events are unaffected."""
    return await service.set_muted(principal, group_id, data.is_muted)


@router.get("/groups/{group_id}/messages", response_model=MessageListResponse)
async def get_group_messages(
    group_id: PydanticObjectId,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Messages per page"),
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """
    Get paginated message history, oldest first within the page.

    Side effect: the caller's unread counter for the group is reset.
    """
    return await service.list_messages(principal, group_id, page, page_size)


@router.post(
    "/groups/{group_id}/messages",
    response_model=GroupMessageResponse,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit(settings.RATE_LIMIT_SEND)
async def send_group_message(
    request: Request,
    group_id: PydanticObjectId,
    data: MessageCreate,
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """
    Send a message to a group (member or admin).

    The response reflects the persisted message; live delivery and
    notifications are best-effort and never change it.
    """
    logger.info(
        "api_send_group_message",
        group_id=str(group_id),
        user_id=principal.user_id,
        message_type=data.message_type.value
    )
    return await service.send_message(principal, group_id, data)


@router.delete("/groups/{group_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group_message(
    group_id: PydanticObjectId,
    message_id: PydanticObjectId,
    principal: Principal = Depends(get_current_principal),
    service: GroupService = Depends(get_group_service)
):
    """Permanently delete a message (admin or original sender)."""
    await service.delete_message(principal, group_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/employees", response_model=EmployeeListResponse)
async def list_employees(
    principal: Principal = Depends(require_admin),
    service: GroupService = Depends(get_group_service)
):
    """Employees of the caller's company, for building member lists (admin only)."""
    return await service.list_employees(principal)
