"""
VoiceConnect Backend: Comment Model
=====================================

Audio replies to a post, threaded through parent_comment_id.

    depth = 0                 for a top-level comment
    depth = parent.depth + 1  for a reply
    depth <= MAX_COMMENT_DEPTH (5), enforced by CommentService

Top-level comments are listed newest first; replies oldest first, so a
thread reads as a conversation.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voiceconnect.database import Base
from voiceconnect.models.base import AudioMixin, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from voiceconnect.models.user import User


MAX_COMMENT_DEPTH = 5


class Comment(UUIDPrimaryKeyMixin, AudioMixin, TimestampMixin, Base):
    __tablename__ = "comments"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_comment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    author: Mapped[User] = relationship(lazy="selectin")

    __table_args__ = (
        Index("idx_comments_post_parent_created", "post_id", "parent_comment_id", "created_at"),
        Index("idx_comments_author_created", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, post_id={self.post_id}, depth={self.depth})>"


class CommentLike(Base):
    __tablename__ = "comment_likes"

    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[User] = relationship(lazy="selectin")
