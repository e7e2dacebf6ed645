"""
VoiceConnect Backend: Post ("Echo") Model
===========================================

What:  An audio clip published by a user, with title/tags/transcription,
       a privacy level and engagement counters.
How:   Audio metadata comes from AudioMixin; the file itself lives in the
       author's Google Drive (file_id + audio_url). Likes are rows in
       `post_likes` so a toggle is a single INSERT or DELETE, while
       like_count is kept denormalized for sorting (trending).

Soft delete:
    DELETE /api/posts/{id} flips is_active; inactive posts behave as 404
    everywhere, but comments keep a valid foreign key.

Query patterns:
    - Feed / explore: ORDER BY created_at DESC  → idx_posts_created_at
    - Author listing: WHERE author_id = ? ORDER BY created_at DESC → idx_posts_author_created
"""

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voiceconnect.database import Base
from voiceconnect.models.base import AudioMixin, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from voiceconnect.models.user import User


PRIVACY_PUBLIC = "public"
PRIVACY_CONNECTIONS_ONLY = "connections_only"
PRIVACY_PRIVATE = "private"
PRIVACY_LEVELS = (PRIVACY_PUBLIC, PRIVACY_CONNECTIONS_ONLY, PRIVACY_PRIVATE)

MAX_TAGS = 10
MAX_TAG_LENGTH = 30


class Post(UUIDPrimaryKeyMixin, AudioMixin, TimestampMixin, Base):
    __tablename__ = "posts"

    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # ── Content ───────────────────────────────────────────────────────────
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")

    privacy: Mapped[str] = mapped_column(String(20), nullable=False, default=PRIVACY_PUBLIC)

    # ── Engagement ────────────────────────────────────────────────────────
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    share_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    listen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    author: Mapped[User] = relationship(lazy="selectin")

    __table_args__ = (
        Index("idx_posts_created_at", "created_at"),
        Index("idx_posts_author_created", "author_id", "created_at"),
    )

    @property
    def engagement_score(self) -> int:
        """likes×2 + comments×3 + shares×5 + listens."""
        return (
            (self.like_count or 0) * 2
            + (self.comment_count or 0) * 3
            + (self.share_count or 0) * 5
            + (self.listen_count or 0)
        )

    def can_view(self, viewer_id: uuid.UUID | None, is_connected: bool = False) -> bool:
        """
        public → everyone; private → author only;
        connections_only → author or an accepted connection.
        """
        if self.privacy == PRIVACY_PUBLIC:
            return True
        if viewer_id is not None and viewer_id == self.author_id:
            return True
        if self.privacy == PRIVACY_CONNECTIONS_ONLY:
            return is_connected
        return False

    def __repr__(self) -> str:
        return f"<Post(id={self.id}, author_id={self.author_id}, privacy='{self.privacy}')>"


class PostLike(Base):
    """One row per (post, user) like."""

    __tablename__ = "post_likes"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[User] = relationship(lazy="selectin")
