"""
VoiceConnect Backend: Post Schemas
====================================

Posts are serialized with nested blocks so the frontend can render a card
without knowing the table layout:

    {
        "id": "...",
        "author": {"id": "...", "username": "ana", ...},
        "audio": {"storage_type": "google_drive", "file_id": "...", "url": "...",
                  "duration": 42, "format": "webm", "file_size": 81234},
        "engagement": {"likes": 3, "comments": 1, "shares": 0, "listens": 17},
        "engagement_score": 26,
        ...
    }
"""

import re
import uuid
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from voiceconnect.models.base import AudioMixin
from voiceconnect.models.post import MAX_TAG_LENGTH, MAX_TAGS, Post
from voiceconnect.schemas.common import PageMeta
from voiceconnect.schemas.user import UserPublic, UserSummary


_TAG_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def parse_tags(raw: Union[str, List[str], None]) -> List[str]:
    """
    Normalizes tag input into a list of at most MAX_TAGS tags.

    Accepts "a, b,c" (multipart form) or ["a", "b"] (JSON). Blank entries
    are dropped; extras beyond MAX_TAGS are discarded.

    Raises:
        ValueError: A tag has invalid characters or is too long.
    """
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    tags = [str(t).strip() for t in items if str(t).strip()]
    for tag in tags:
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tag '{tag}' exceeds {MAX_TAG_LENGTH} characters")
        if not _TAG_RE.match(tag):
            raise ValueError(
                f"Tag '{tag}' may only contain letters, digits, hyphens and underscores"
            )
    return tags[:MAX_TAGS]


class AudioInfo(BaseModel):
    storage_type: str
    file_id: str
    url: str
    duration: int = Field(description="Seconds")
    format: str
    file_size: int = Field(description="Bytes")

    @classmethod
    def from_row(cls, row: AudioMixin) -> "AudioInfo":
        return cls(
            storage_type=row.storage_type,
            file_id=row.file_id,
            url=row.audio_url,
            duration=row.duration,
            format=row.audio_format,
            file_size=row.file_size,
        )


class EngagementCounts(BaseModel):
    likes: int
    comments: int
    shares: int
    listens: int

    @classmethod
    def from_post(cls, post: Post) -> "EngagementCounts":
        return cls(
            likes=post.like_count,
            comments=post.comment_count,
            shares=post.share_count,
            listens=post.listen_count,
        )


class PostResponse(BaseModel):
    id: uuid.UUID
    author: UserSummary
    audio: AudioInfo
    transcription: Optional[str] = None
    title: Optional[str] = None
    tags: List[str]
    language: str
    privacy: str
    engagement: EngagementCounts
    engagement_score: int
    is_liked: Optional[bool] = Field(
        default=None, description="Whether the viewer liked it; null for anonymous viewers"
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_post(cls, post: Post, is_liked: Optional[bool] = None) -> "PostResponse":
        return cls(
            id=post.id,
            author=UserSummary.model_validate(post.author),
            audio=AudioInfo.from_row(post),
            transcription=post.transcription,
            title=post.title,
            tags=list(post.tags or []),
            language=post.language,
            privacy=post.privacy,
            engagement=EngagementCounts.from_post(post),
            engagement_score=post.engagement_score,
            is_liked=is_liked,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )


class PostList(PageMeta):
    posts: List[PostResponse]


class PostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[Union[str, List[str]]] = None
    privacy: Optional[Literal["public", "connections_only", "private"]] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        if v is None:
            return None
        return parse_tags(v)


class LikeToggleResponse(BaseModel):
    liked: bool
    like_count: int


class LikerList(PageMeta):
    users: List[UserPublic]


class ListenResponse(BaseModel):
    listen_count: int


class PostStats(BaseModel):
    engagement: EngagementCounts
    engagement_score: int
    created_at: datetime
    updated_at: datetime
