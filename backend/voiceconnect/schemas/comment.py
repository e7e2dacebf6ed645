"""Schemas for threaded audio comments."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from voiceconnect.models.comment import Comment
from voiceconnect.schemas.common import PageMeta
from voiceconnect.schemas.post import AudioInfo
from voiceconnect.schemas.user import UserSummary


class CommentResponse(BaseModel):
    id: uuid.UUID
    post_id: uuid.UUID
    author: UserSummary
    audio: AudioInfo
    transcription: Optional[str] = None
    parent_comment_id: Optional[uuid.UUID] = None
    depth: int
    like_count: int
    is_liked: Optional[bool] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment, is_liked: Optional[bool] = None) -> "CommentResponse":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            author=UserSummary.model_validate(comment.author),
            audio=AudioInfo.from_row(comment),
            transcription=comment.transcription,
            parent_comment_id=comment.parent_comment_id,
            depth=comment.depth,
            like_count=comment.like_count,
            is_liked=is_liked,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class CommentList(PageMeta):
    comments: List[CommentResponse]


class CommentUpdate(BaseModel):
    transcription: str = Field(max_length=5000)
