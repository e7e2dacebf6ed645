"""Comment edits, replies and likes. Creation lives under /api/posts/{post_id}/comments."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user, get_optional_user
from voiceconnect.middleware.rate_limit import social_limiter
from voiceconnect.models.user import User
from voiceconnect.schemas.comment import CommentList, CommentResponse, CommentUpdate
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.post import LikerList, LikeToggleResponse
from voiceconnect.services.comment_service import comment_service

router = APIRouter(prefix="/api/comments", tags=["Comments"])


@router.get("/user/{user_id}", response_model=ApiResponse[CommentList])
async def user_comments(
    user_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CommentList]:
    return ApiResponse(data=await comment_service.user_comments(db, user_id, viewer, page))


@router.put(
    "/{comment_id}",
    response_model=ApiResponse[CommentResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Edit a comment's transcription",
)
async def update_comment(
    comment_id: uuid.UUID,
    body: CommentUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CommentResponse]:
    comment = await comment_service.update_transcription(db, user, comment_id, body.transcription)
    return ApiResponse(message="Comment updated successfully", data=comment)


@router.delete(
    "/{comment_id}",
    response_model=ApiResponse[None],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_comment(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await comment_service.delete(db, user, comment_id)
    return ApiResponse(message="Comment deleted successfully")


@router.get("/{comment_id}/replies", response_model=ApiResponse[CommentList])
async def comment_replies(
    comment_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CommentList]:
    return ApiResponse(data=await comment_service.replies(db, comment_id, viewer, page))


@router.post(
    "/{comment_id}/like",
    response_model=ApiResponse[LikeToggleResponse],
    dependencies=[Depends(social_limiter)],
)
async def toggle_comment_like(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[LikeToggleResponse]:
    result = await comment_service.toggle_like(db, user, comment_id)
    return ApiResponse(message="Comment liked" if result.liked else "Comment unliked", data=result)


@router.get("/{comment_id}/likes", response_model=ApiResponse[LikerList])
async def comment_likers(
    comment_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[LikerList]:
    return ApiResponse(data=await comment_service.likers(db, comment_id, viewer, page))
