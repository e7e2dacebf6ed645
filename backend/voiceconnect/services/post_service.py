"""
VoiceConnect Backend: Post Service
====================================

What:  Audio posts ("echoes"): creation through the audio pipeline, the
       feed/trending/explore listings, likes, listens and soft deletion.

Orchestration Flow (POST /api/posts):
    ┌──────────┐    ┌──────────────┐    ┌──────────┐    ┌──────────────┐
    │  Upload  │───▶│ AudioService │───▶│  Store   │───▶│ Notify each  │
    │  (Route) │    │ validate+Drive│   │  (DB)    │    │ connection   │
    └──────────┘    └──────────────┘    └──────────┘    └──────────────┘

    If the database write fails after the Drive upload, the Drive file is
    deleted again so no orphan is left in the user's storage.

Visibility:
    Every read goes through `_ensure_visible`, which applies Post.can_view
    and only asks the database about connections for connections_only posts.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional, Set

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.config import settings
from voiceconnect.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.models.base import utcnow
from voiceconnect.models.notification import NOTIFICATION_NEW_POST, NOTIFICATION_POST_LIKE
from voiceconnect.models.post import (
    PRIVACY_CONNECTIONS_ONLY,
    PRIVACY_LEVELS,
    PRIVACY_PUBLIC,
    Post,
    PostLike,
)
from voiceconnect.models.user import User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.post import (
    EngagementCounts,
    LikerList,
    LikeToggleResponse,
    ListenResponse,
    PostList,
    PostResponse,
    PostStats,
    PostUpdate,
    parse_tags,
)
from voiceconnect.schemas.user import UserPublic
from voiceconnect.services.audio_service import audio_service
from voiceconnect.services.connection_service import actor_name, connection_service
from voiceconnect.services.notification_service import notification_service

logger = logging.getLogger(__name__)

TRENDING_WINDOW = timedelta(days=7)


def clamped_decrement(column, amount: int):
    """column - amount, never below zero (portable across PostgreSQL and SQLite)."""
    return case((column > amount, column - amount), else_=0)


class PostService:

    # ── Helpers ───────────────────────────────────────────────────────────

    async def get_active_post(self, db: AsyncSession, post_id: uuid.UUID) -> Post:
        post = await db.get(Post, post_id)
        if post is None or not post.is_active:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        return post

    async def _ensure_visible(self, db: AsyncSession, post: Post, viewer: Optional[User]) -> None:
        viewer_id = viewer.id if viewer else None
        is_connected = False
        if post.privacy == PRIVACY_CONNECTIONS_ONLY and viewer_id and viewer_id != post.author_id:
            is_connected = await connection_service.are_connected(db, viewer_id, post.author_id)
        if not post.can_view(viewer_id, is_connected):
            raise PermissionDeniedError("You do not have permission to view this post")

    async def get_visible_post(
        self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User]
    ) -> Post:
        post = await self.get_active_post(db, post_id)
        await self._ensure_visible(db, post, viewer)
        return post

    async def _liked_ids(
        self, db: AsyncSession, viewer: Optional[User], post_ids: List[uuid.UUID]
    ) -> Optional[Set[uuid.UUID]]:
        if viewer is None:
            return None
        if not post_ids:
            return set()
        rows = await db.execute(
            select(PostLike.post_id).where(
                PostLike.user_id == viewer.id, PostLike.post_id.in_(post_ids)
            )
        )
        return set(rows.scalars().all())

    async def _page(
        self,
        db: AsyncSession,
        conditions: list,
        order_by: list,
        page: PaginationParams,
        viewer: Optional[User],
    ) -> PostList:
        conditions = [Post.is_active.is_(True), *conditions]
        try:
            total = await db.scalar(select(func.count()).select_from(Post).where(*conditions))
            posts = (
                await db.execute(
                    select(Post)
                    .where(*conditions)
                    .order_by(*order_by)
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).scalars().all()
            liked = await self._liked_ids(db, viewer, [p.id for p in posts])
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("Failed to list posts: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        return PostList(
            posts=[
                PostResponse.from_post(p, is_liked=None if liked is None else p.id in liked)
                for p in posts
            ],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    # ── Create ────────────────────────────────────────────────────────────

    async def create_post(
        self,
        db: AsyncSession,
        author: User,
        filename: str,
        content: bytes,
        title: Optional[str] = None,
        tags: Optional[str] = None,
        privacy: str = PRIVACY_PUBLIC,
        client_duration: Optional[float] = None,
        content_length: Optional[int] = None,
        language: str = "en",
    ) -> PostResponse:
        """
        Validates the metadata, runs the audio pipeline, stores the post and
        fans out `new_post` notifications to the author's connections.
        """
        if privacy not in PRIVACY_LEVELS:
            raise ValidationError(
                message=f"Invalid privacy '{privacy}'. Must be one of: {', '.join(PRIVACY_LEVELS)}",
                field="privacy",
            )
        try:
            tag_list = parse_tags(tags)
        except ValueError as e:
            raise ValidationError(message=str(e), field="tags")

        audio = await audio_service.process_upload(
            db,
            author,
            filename=filename,
            content=content,
            max_duration=settings.max_post_duration,
            client_duration=client_duration,
            content_length=content_length,
            language=language,
        )

        try:
            post = Post(
                author_id=author.id,
                author=author,
                title=title or None,
                tags=tag_list,
                privacy=privacy,
                language=language,
                **audio.as_columns(),
            )
            db.add(post)
            await db.flush()
            await db.execute(
                update(User)
                .where(User.id == author.id)
                .values(
                    post_count=User.post_count + 1,
                    audio_minutes=User.audio_minutes + audio.duration // 60,
                )
            )
        except Exception as e:
            logger.error("Failed to save post for %s: %s", author.id, str(e), exc_info=True)
            await audio_service.delete_remote(db, author, audio.file_id)
            raise DatabaseError(
                message="An error occurred while saving your post. Please try again.",
                context={"original_error": type(e).__name__},
            )

        for connection_id in await connection_service.connected_user_ids(db, author.id):
            notification_service.send(
                connection_id,
                NOTIFICATION_NEW_POST,
                {
                    "actor_id": str(author.id),
                    "actor_name": actor_name(author),
                    "post_id": str(post.id),
                    "post_title": post.title,
                },
                db=db,
            )

        logger.info("Post %s created by %s (%ds)", post.id, author.id, post.duration)
        return PostResponse.from_post(post, is_liked=False)

    # ── Listings ──────────────────────────────────────────────────────────

    async def feed(self, db: AsyncSession, user: User, page: PaginationParams) -> PostList:
        """The caller's and their connections' public/connections_only posts, newest first."""
        author_ids = await connection_service.connected_user_ids(db, user.id)
        author_ids.append(user.id)
        return await self._page(
            db,
            [
                Post.author_id.in_(author_ids),
                Post.privacy.in_((PRIVACY_PUBLIC, PRIVACY_CONNECTIONS_ONLY)),
            ],
            [Post.created_at.desc()],
            page,
            user,
        )

    async def trending(
        self, db: AsyncSession, viewer: Optional[User], page: PaginationParams
    ) -> PostList:
        since = utcnow() - TRENDING_WINDOW
        return await self._page(
            db,
            [Post.privacy == PRIVACY_PUBLIC, Post.created_at >= since],
            [Post.like_count.desc(), Post.comment_count.desc(), Post.listen_count.desc()],
            page,
            viewer,
        )

    async def explore(
        self, db: AsyncSession, viewer: Optional[User], page: PaginationParams
    ) -> PostList:
        return await self._page(
            db, [Post.privacy == PRIVACY_PUBLIC], [Post.created_at.desc()], page, viewer
        )

    async def user_posts(
        self,
        db: AsyncSession,
        author_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> PostList:
        author = await db.get(User, author_id)
        if author is None or not author.is_active:
            raise NotFoundError(resource="user", resource_id=str(author_id))

        conditions = [Post.author_id == author_id]
        if viewer is None or viewer.id != author_id:
            conditions.append(Post.privacy == PRIVACY_PUBLIC)
        return await self._page(db, conditions, [Post.created_at.desc()], page, viewer)

    # ── Single post ───────────────────────────────────────────────────────

    async def get_post(
        self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User]
    ) -> PostResponse:
        post = await self.get_visible_post(db, post_id, viewer)
        liked = await self._liked_ids(db, viewer, [post.id])
        return PostResponse.from_post(post, is_liked=None if liked is None else post.id in liked)

    async def update_post(
        self, db: AsyncSession, user: User, post_id: uuid.UUID, data: PostUpdate
    ) -> PostResponse:
        post = await self.get_active_post(db, post_id)
        if post.author_id != user.id:
            raise PermissionDeniedError("You can only edit your own posts")

        if "title" in data.model_fields_set:
            post.title = data.title or None
        if data.tags is not None:
            post.tags = data.tags
        if data.privacy is not None:
            post.privacy = data.privacy
        await db.flush()

        logger.info("Post %s updated by %s", post.id, user.id)
        liked = await self._liked_ids(db, user, [post.id])
        return PostResponse.from_post(post, is_liked=post.id in liked)

    async def delete_post(self, db: AsyncSession, user: User, post_id: uuid.UUID) -> None:
        """
        Soft-deletes the post, removes its Drive file (best effort) and
        rolls back the author's post_count / audio_minutes.
        """
        post = await self.get_active_post(db, post_id)
        if post.author_id != user.id:
            raise PermissionDeniedError("You can only delete your own posts")

        await audio_service.delete_remote(db, user, post.file_id)

        post.is_active = False
        await db.flush()
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                post_count=clamped_decrement(User.post_count, 1),
                audio_minutes=clamped_decrement(User.audio_minutes, post.duration // 60),
            )
        )
        logger.info("Post %s deleted by %s", post.id, user.id)

    # ── Engagement ────────────────────────────────────────────────────────

    async def toggle_like(
        self, db: AsyncSession, user: User, post_id: uuid.UUID
    ) -> LikeToggleResponse:
        post = await self.get_visible_post(db, post_id, user)

        existing = await db.get(PostLike, (post.id, user.id))
        if existing is not None:
            await db.execute(
                delete(PostLike).where(PostLike.post_id == post.id, PostLike.user_id == user.id)
            )
            delta_stmt = update(Post).where(Post.id == post.id).values(
                like_count=clamped_decrement(Post.like_count, 1)
            )
            liked = False
        else:
            db.add(PostLike(post_id=post.id, user_id=user.id))
            await db.flush()
            delta_stmt = update(Post).where(Post.id == post.id).values(
                like_count=Post.like_count + 1
            )
            liked = True

        await db.execute(delta_stmt)
        await db.refresh(post, attribute_names=["like_count", "updated_at"])

        if liked and post.author_id != user.id:
            notification_service.send(
                post.author_id,
                NOTIFICATION_POST_LIKE,
                {
                    "actor_id": str(user.id),
                    "actor_name": actor_name(user),
                    "post_id": str(post.id),
                    "post_title": post.title,
                },
                db=db,
            )
        return LikeToggleResponse(liked=liked, like_count=post.like_count)

    async def likers(
        self,
        db: AsyncSession,
        post_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> LikerList:
        post = await self.get_visible_post(db, post_id, viewer)
        total = await db.scalar(
            select(func.count()).select_from(PostLike).where(PostLike.post_id == post.id)
        )
        users = (
            await db.execute(
                select(User)
                .join(PostLike, PostLike.user_id == User.id)
                .where(PostLike.post_id == post.id)
                .order_by(PostLike.created_at.desc())
                .offset(page.skip)
                .limit(page.limit)
            )
        ).scalars().all()
        return LikerList(
            users=[UserPublic.model_validate(u) for u in users],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def record_listen(
        self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User]
    ) -> ListenResponse:
        post = await self.get_visible_post(db, post_id, viewer)
        await db.execute(
            update(Post).where(Post.id == post.id).values(listen_count=Post.listen_count + 1)
        )
        await db.refresh(post, attribute_names=["listen_count", "updated_at"])
        return ListenResponse(listen_count=post.listen_count)

    async def stats(
        self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User]
    ) -> PostStats:
        post = await self.get_visible_post(db, post_id, viewer)
        return PostStats(
            engagement=EngagementCounts.from_post(post),
            engagement_score=post.engagement_score,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


post_service = PostService()
