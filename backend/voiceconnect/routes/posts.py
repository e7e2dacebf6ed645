"""
VoiceConnect Backend: Post Routes
===================================

Audio posts ("echoes") plus the comment endpoints nested under a post.

Upload Flow (POST /api/posts):
    1. Client sends multipart/form-data: `audio` file + title, tags,
       privacy and the client-measured duration
    2. Rate limits: `upload` per IP and `post_creation` per user
    3. PostService validates, uploads to the author's Drive and stores
    4. 201 with the new post
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user, get_optional_user
from voiceconnect.middleware.rate_limit import (
    post_creation_limiter,
    social_limiter,
    upload_limiter,
)
from voiceconnect.models.post import PRIVACY_PUBLIC
from voiceconnect.models.user import User
from voiceconnect.schemas.comment import CommentList, CommentResponse
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.post import (
    LikerList,
    LikeToggleResponse,
    ListenResponse,
    PostList,
    PostResponse,
    PostStats,
    PostUpdate,
)
from voiceconnect.services.comment_service import comment_service
from voiceconnect.services.post_service import post_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["Posts"])


# ── Listings ──────────────────────────────────────────────────────────────

@router.get("/feed", response_model=ApiResponse[PostList], summary="Your and your connections' posts")
async def feed(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostList]:
    return ApiResponse(data=await post_service.feed(db, user, page))


@router.get("/trending", response_model=ApiResponse[PostList], summary="Most engaged public posts this week")
async def trending(
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostList]:
    return ApiResponse(data=await post_service.trending(db, viewer, page))


@router.get("/explore", response_model=ApiResponse[PostList], summary="Newest public posts")
async def explore(
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostList]:
    return ApiResponse(data=await post_service.explore(db, viewer, page))


@router.get("/user/{user_id}", response_model=ApiResponse[PostList])
async def user_posts(
    user_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostList]:
    return ApiResponse(data=await post_service.user_posts(db, user_id, viewer, page))


# ── Create ────────────────────────────────────────────────────────────────

@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[PostResponse],
    responses={
        400: {"description": "Invalid audio, tags or Drive not connected", "model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"description": "Google Drive unavailable", "model": ErrorResponse},
    },
    dependencies=[Depends(upload_limiter), Depends(post_creation_limiter)],
    summary="Publish an audio post",
)
async def create_post(
    audio: UploadFile = File(..., description="Audio file: mp3, wav, webm, ogg or m4a"),
    title: Optional[str] = Form(default=None, max_length=200),
    tags: Optional[str] = Form(default=None, description="Comma-separated, at most 10"),
    privacy: str = Form(default=PRIVACY_PUBLIC),
    duration: Optional[float] = Form(default=None, description="Client-measured seconds"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostResponse]:
    content = await audio.read()
    logger.info(
        "Received post upload: filename=%s, size=%d bytes",
        audio.filename or "unknown",
        len(content),
    )
    try:
        post = await post_service.create_post(
            db,
            user,
            filename=audio.filename or "recording.webm",
            content=content,
            title=title,
            tags=tags,
            privacy=privacy,
            client_duration=duration,
            content_length=audio.size,
        )
    finally:
        await audio.close()
    return ApiResponse(message="Post created successfully", data=post)


# ── Single post ───────────────────────────────────────────────────────────

@router.get(
    "/{post_id}",
    response_model=ApiResponse[PostResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_post(
    post_id: uuid.UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostResponse]:
    return ApiResponse(data=await post_service.get_post(db, post_id, viewer))


@router.put(
    "/{post_id}",
    response_model=ApiResponse[PostResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_post(
    post_id: uuid.UUID,
    body: PostUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostResponse]:
    post = await post_service.update_post(db, user, post_id, body)
    return ApiResponse(message="Post updated successfully", data=post)


@router.delete(
    "/{post_id}",
    response_model=ApiResponse[None],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_post(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await post_service.delete_post(db, user, post_id)
    return ApiResponse(message="Post deleted successfully")


# ── Engagement ────────────────────────────────────────────────────────────

@router.post(
    "/{post_id}/like",
    response_model=ApiResponse[LikeToggleResponse],
    dependencies=[Depends(social_limiter)],
    summary="Like or unlike a post",
)
async def toggle_like(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[LikeToggleResponse]:
    result = await post_service.toggle_like(db, user, post_id)
    return ApiResponse(message="Post liked" if result.liked else "Post unliked", data=result)


@router.get("/{post_id}/likes", response_model=ApiResponse[LikerList])
async def post_likers(
    post_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[LikerList]:
    return ApiResponse(data=await post_service.likers(db, post_id, viewer, page))


@router.post(
    "/{post_id}/listen",
    response_model=ApiResponse[ListenResponse],
    dependencies=[Depends(social_limiter)],
)
async def record_listen(
    post_id: uuid.UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ListenResponse]:
    return ApiResponse(data=await post_service.record_listen(db, post_id, viewer))


@router.get("/{post_id}/stats", response_model=ApiResponse[PostStats])
async def post_stats(
    post_id: uuid.UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PostStats]:
    return ApiResponse(data=await post_service.stats(db, post_id, viewer))


# ── Comments ──────────────────────────────────────────────────────────────

@router.get("/{post_id}/comments", response_model=ApiResponse[CommentList])
async def list_comments(
    post_id: uuid.UUID,
    page: PaginationParams = Depends(pagination_params),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CommentList]:
    return ApiResponse(data=await comment_service.list_top_level(db, post_id, viewer, page))


@router.post(
    "/{post_id}/comments",
    status_code=201,
    response_model=ApiResponse[CommentResponse],
    responses={
        400: {"description": "Invalid audio or thread too deep", "model": ErrorResponse},
        404: {"description": "Post or parent comment not found", "model": ErrorResponse},
    },
    dependencies=[Depends(upload_limiter), Depends(social_limiter)],
    summary="Reply to a post with audio",
)
async def create_comment(
    post_id: uuid.UUID,
    audio: UploadFile = File(...),
    parent_comment_id: Optional[uuid.UUID] = Form(default=None),
    duration: Optional[float] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CommentResponse]:
    content = await audio.read()
    try:
        comment = await comment_service.create_comment(
            db,
            user,
            post_id,
            filename=audio.filename or "comment.webm",
            content=content,
            parent_comment_id=parent_comment_id,
            client_duration=duration,
            content_length=audio.size,
        )
    finally:
        await audio.close()
    return ApiResponse(message="Comment created successfully", data=comment)
