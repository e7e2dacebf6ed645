"""
VoiceConnect Backend: User Routes
===================================

Fixed paths (/me, /search) are declared before /{user_id} so they are not
captured by the UUID path parameter.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user, get_optional_user
from voiceconnect.middleware.rate_limit import search_limiter, upload_limiter
from voiceconnect.models.user import User
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.connection import ConnectedUserList
from voiceconnect.schemas.user import (
    CurrentUserProfile,
    StoragePreferenceUpdate,
    StorageQuota,
    UserPrivate,
    UserProfile,
    UserSearchResponse,
    UserStats,
    UserUpdate,
)
from voiceconnect.services.connection_service import connection_service
from voiceconnect.services.user_service import user_service

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/me", response_model=ApiResponse[CurrentUserProfile], summary="Current user profile")
async def get_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CurrentUserProfile]:
    return ApiResponse(data=await user_service.get_me(db, user))


@router.put("/me", response_model=ApiResponse[UserPrivate], summary="Update profile and settings")
async def update_me(
    body: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    profile = await user_service.update_me(db, user, body)
    return ApiResponse(message="Profile updated successfully", data=profile)


@router.get(
    "/search",
    response_model=ApiResponse[UserSearchResponse],
    dependencies=[Depends(search_limiter)],
    summary="Search users by username, display name or email",
)
async def search_users(
    q: str = Query(min_length=2, max_length=50, description="Search term"),
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserSearchResponse]:
    return ApiResponse(data=await user_service.search(db, user, q, page))


@router.get("/me/connections", response_model=ApiResponse[ConnectedUserList])
async def my_connections(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectedUserList]:
    return ApiResponse(data=await connection_service.list_connections(db, user, page))


@router.get("/me/stats", response_model=ApiResponse[UserStats])
async def my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserStats]:
    return ApiResponse(data=await user_service.get_stats(db, user))


@router.get(
    "/me/storage",
    response_model=ApiResponse[StorageQuota],
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Google Drive storage quota",
)
async def my_storage(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[StorageQuota]:
    return ApiResponse(data=await user_service.get_storage(db, user))


@router.put("/me/storage/preference", response_model=ApiResponse[UserPrivate])
async def set_storage_preference(
    body: StoragePreferenceUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    profile = await user_service.set_storage_preference(db, user, body.storage_preference)
    return ApiResponse(message="Storage preference updated", data=profile)


@router.post(
    "/me/avatar",
    response_model=ApiResponse[UserPrivate],
    responses={501: {"model": ErrorResponse}},
    dependencies=[Depends(upload_limiter)],
)
async def upload_avatar(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    return ApiResponse(data=await user_service.upload_avatar(db, user))


@router.delete("/me/avatar", response_model=ApiResponse[UserPrivate])
async def remove_avatar(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    profile = await user_service.remove_avatar(db, user)
    return ApiResponse(message="Avatar removed", data=profile)


@router.get(
    "/{user_id}",
    response_model=ApiResponse[UserProfile],
    responses={404: {"model": ErrorResponse}},
    summary="Public profile",
)
async def get_profile(
    user_id: uuid.UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserProfile]:
    return ApiResponse(data=await user_service.get_profile(db, user_id, viewer))
