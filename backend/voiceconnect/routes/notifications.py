"""Notification inbox for the current user."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user
from voiceconnect.models.user import User
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.notification import (
    NotificationList,
    NotificationResponse,
    ReadAllResponse,
    UnreadCount,
)
from voiceconnect.services.notification_service import notification_service

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=ApiResponse[NotificationList])
async def list_notifications(
    page: PaginationParams = Depends(pagination_params),
    unread_only: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NotificationList]:
    result = await notification_service.list_notifications(db, user.id, page, unread_only)
    return ApiResponse(data=result)


@router.get("/unread-count", response_model=ApiResponse[UnreadCount])
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UnreadCount]:
    count = await notification_service.unread_count(db, user.id)
    return ApiResponse(data=UnreadCount(count=count))


@router.put("/read-all", response_model=ApiResponse[ReadAllResponse])
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ReadAllResponse]:
    updated = await notification_service.mark_all_read(db, user.id)
    return ApiResponse(
        message="All notifications marked as read",
        data=ReadAllResponse(updated=updated),
    )


@router.put(
    "/{notification_id}/read",
    response_model=ApiResponse[NotificationResponse],
    responses={404: {"model": ErrorResponse}},
)
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NotificationResponse]:
    notification = await notification_service.mark_read(db, user.id, notification_id)
    return ApiResponse(message="Notification marked as read", data=notification)
