"""
VoiceConnect Backend: Comment Service
=======================================

Threaded audio replies. A comment goes through the same audio pipeline as
a post (with the shorter comment duration limit) and is attached either to
the post itself or to another comment on the same post.
"""

import logging
import uuid
from typing import List, Optional, Set

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.config import settings
from voiceconnect.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.models.comment import MAX_COMMENT_DEPTH, Comment, CommentLike
from voiceconnect.models.notification import NOTIFICATION_POST_COMMENT
from voiceconnect.models.post import PRIVACY_CONNECTIONS_ONLY, PRIVACY_PUBLIC, Post
from voiceconnect.models.user import User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.comment import CommentList, CommentResponse
from voiceconnect.schemas.post import LikerList, LikeToggleResponse
from voiceconnect.schemas.user import UserPublic
from voiceconnect.services.audio_service import audio_service
from voiceconnect.services.connection_service import actor_name, connection_service
from voiceconnect.services.notification_service import notification_service
from voiceconnect.services.post_service import clamped_decrement, post_service

logger = logging.getLogger(__name__)


class CommentService:
    async def get_active_comment(self, db: AsyncSession, comment_id: uuid.UUID) -> Comment:
        comment = await db.get(Comment, comment_id)
        if comment is None or not comment.is_active:
            raise NotFoundError(resource="comment", resource_id=str(comment_id))
        return comment

    async def _liked_ids(
        self, db: AsyncSession, viewer: Optional[User], comment_ids: List[uuid.UUID]
    ) -> Optional[Set[uuid.UUID]]:
        if viewer is None:
            return None
        if not comment_ids:
            return set()
        rows = await db.execute(
            select(CommentLike.comment_id).where(
                CommentLike.user_id == viewer.id, CommentLike.comment_id.in_(comment_ids)
            )
        )
        return set(rows.scalars().all())

    async def _page(
        self,
        db: AsyncSession,
        conditions: list,
        order_by,
        page: PaginationParams,
        viewer: Optional[User],
    ) -> CommentList:
        conditions = [Comment.is_active.is_(True), *conditions]
        try:
            total = await db.scalar(select(func.count()).select_from(Comment).where(*conditions))
            comments = (
                await db.execute(
                    select(Comment)
                    .where(*conditions)
                    .order_by(order_by)
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).scalars().all()
            liked = await self._liked_ids(db, viewer, [c.id for c in comments])
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("Failed to list comments: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        return CommentList(
            comments=[
                CommentResponse.from_comment(c, is_liked=None if liked is None else c.id in liked)
                for c in comments
            ],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    # ── Create ────────────────────────────────────────────────────────────

    async def create_comment(
        self,
        db: AsyncSession,
        author: User,
        post_id: uuid.UUID,
        filename: str,
        content: bytes,
        parent_comment_id: Optional[uuid.UUID] = None,
        client_duration: Optional[float] = None,
        content_length: Optional[int] = None,
    ) -> CommentResponse:
        """
        Adds an audio comment to a post.

        Raises:
            NotFoundError: post missing, or parent missing / on another post
            ValidationError: reply would be nested deeper than MAX_COMMENT_DEPTH
        """
        post = await post_service.get_visible_post(db, post_id, author)

        parent: Optional[Comment] = None
        depth = 0
        if parent_comment_id is not None:
            parent = await db.get(Comment, parent_comment_id)
            if parent is None or not parent.is_active or parent.post_id != post.id:
                raise NotFoundError(
                    resource="parent comment", resource_id=str(parent_comment_id)
                )
            depth = parent.depth + 1
            if depth > MAX_COMMENT_DEPTH:
                raise ValidationError(
                    message="Maximum comment depth exceeded",
                    field="parent_comment_id",
                    context={"max_depth": MAX_COMMENT_DEPTH},
                )

        audio = await audio_service.process_upload(
            db,
            author,
            filename=filename,
            content=content,
            max_duration=settings.max_comment_duration,
            client_duration=client_duration,
            content_length=content_length,
            language=post.language,
        )

        try:
            comment = Comment(
                post_id=post.id,
                author_id=author.id,
                author=author,
                parent_comment_id=parent.id if parent else None,
                depth=depth,
                **audio.as_columns(),
            )
            db.add(comment)
            await db.flush()
            await db.execute(
                update(Post).where(Post.id == post.id).values(comment_count=Post.comment_count + 1)
            )
        except Exception as e:
            logger.error("Failed to save comment on %s: %s", post.id, str(e), exc_info=True)
            await audio_service.delete_remote(db, author, audio.file_id)
            raise DatabaseError(
                message="An error occurred while saving your comment. Please try again.",
                context={"original_error": type(e).__name__},
            )

        recipients = {post.author_id}
        if parent is not None:
            recipients.add(parent.author_id)
        recipients.discard(author.id)
        for recipient_id in recipients:
            notification_service.send(
                recipient_id,
                NOTIFICATION_POST_COMMENT,
                {
                    "actor_id": str(author.id),
                    "actor_name": actor_name(author),
                    "post_id": str(post.id),
                    "comment_id": str(comment.id),
                    "post_title": post.title,
                },
                db=db,
            )

        logger.info("Comment %s on post %s by %s (depth %d)", comment.id, post.id, author.id, depth)
        return CommentResponse.from_comment(comment, is_liked=False)

    # ── Listings ──────────────────────────────────────────────────────────

    async def list_top_level(
        self,
        db: AsyncSession,
        post_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> CommentList:
        post = await post_service.get_visible_post(db, post_id, viewer)
        return await self._page(
            db,
            [Comment.post_id == post.id, Comment.parent_comment_id.is_(None)],
            Comment.created_at.desc(),
            page,
            viewer,
        )

    async def replies(
        self,
        db: AsyncSession,
        comment_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> CommentList:
        parent = await self.get_active_comment(db, comment_id)
        await post_service.get_visible_post(db, parent.post_id, viewer)
        return await self._page(
            db,
            [Comment.parent_comment_id == parent.id],
            Comment.created_at.asc(),
            page,
            viewer,
        )

    async def user_comments(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> CommentList:
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        visible_posts = await self._visible_posts_clause(db, viewer)
        return await self._page(
            db,
            [Comment.author_id == user_id, Comment.post_id.in_(visible_posts)],
            Comment.created_at.desc(),
            page,
            viewer,
        )

    async def _visible_posts_clause(self, db: AsyncSession, viewer: Optional[User]):
        """Ids of active posts `viewer` may see, as a subquery."""
        allowed = [Post.privacy == PRIVACY_PUBLIC]
        if viewer is not None:
            connected = await connection_service.connected_user_ids(db, viewer.id)
            allowed.append(Post.author_id == viewer.id)
            if connected:
                allowed.append(
                    and_(Post.privacy == PRIVACY_CONNECTIONS_ONLY, Post.author_id.in_(connected))
                )
        return select(Post.id).where(Post.is_active.is_(True), or_(*allowed))

    # ── Author actions ────────────────────────────────────────────────────

    async def update_transcription(
        self, db: AsyncSession, user: User, comment_id: uuid.UUID, transcription: str
    ) -> CommentResponse:
        comment = await self.get_active_comment(db, comment_id)
        if comment.author_id != user.id:
            raise PermissionDeniedError("You can only edit your own comments")

        comment.transcription = transcription
        await db.flush()
        liked = await self._liked_ids(db, user, [comment.id])
        return CommentResponse.from_comment(comment, is_liked=comment.id in liked)

    async def delete(self, db: AsyncSession, user: User, comment_id: uuid.UUID) -> None:
        comment = await self.get_active_comment(db, comment_id)
        if comment.author_id != user.id:
            raise PermissionDeniedError("You can only delete your own comments")

        await audio_service.delete_remote(db, user, comment.file_id)
        comment.is_active = False
        await db.flush()
        await db.execute(
            update(Post)
            .where(Post.id == comment.post_id)
            .values(comment_count=clamped_decrement(Post.comment_count, 1))
        )
        logger.info("Comment %s deleted by %s", comment.id, user.id)

    # ── Likes ─────────────────────────────────────────────────────────────

    async def toggle_like(
        self, db: AsyncSession, user: User, comment_id: uuid.UUID
    ) -> LikeToggleResponse:
        comment = await self.get_active_comment(db, comment_id)
        await post_service.get_visible_post(db, comment.post_id, user)

        existing = await db.get(CommentLike, (comment.id, user.id))
        if existing is not None:
            await db.execute(
                delete(CommentLike).where(
                    CommentLike.comment_id == comment.id, CommentLike.user_id == user.id
                )
            )
            new_count = clamped_decrement(Comment.like_count, 1)
            liked = False
        else:
            db.add(CommentLike(comment_id=comment.id, user_id=user.id))
            await db.flush()
            new_count = Comment.like_count + 1
            liked = True

        await db.execute(
            update(Comment).where(Comment.id == comment.id).values(like_count=new_count)
        )
        await db.refresh(comment, attribute_names=["like_count", "updated_at"])
        return LikeToggleResponse(liked=liked, like_count=comment.like_count)

    async def likers(
        self,
        db: AsyncSession,
        comment_id: uuid.UUID,
        viewer: Optional[User],
        page: PaginationParams,
    ) -> LikerList:
        comment = await self.get_active_comment(db, comment_id)
        await post_service.get_visible_post(db, comment.post_id, viewer)
        total = await db.scalar(
            select(func.count()).select_from(CommentLike).where(CommentLike.comment_id == comment.id)
        )
        users = (
            await db.execute(
                select(User)
                .join(CommentLike, CommentLike.user_id == User.id)
                .where(CommentLike.comment_id == comment.id)
                .order_by(CommentLike.created_at.desc())
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


comment_service = CommentService()
