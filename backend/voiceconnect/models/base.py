"""Shared column helpers for the ORM models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UUIDPrimaryKeyMixin:
    # Generic Uuid: native UUID on PostgreSQL, CHAR(32) on SQLite
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    # Python-side defaults only: server-generated values would be expired
    # after flush and need a lazy reload, which AsyncSession cannot do.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class AudioMixin:
    """Columns describing an audio file stored in the author's Google Drive."""

    storage_type: Mapped[str] = mapped_column(String(20), nullable=False, default="google_drive")
    file_id: Mapped[str] = mapped_column(String(255), nullable=False)
    audio_url: Mapped[str] = mapped_column(String(500), nullable=False)
    # Whole seconds, bounded per owner type (posts 1..600, comments 1..120)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    audio_format: Mapped[str] = mapped_column(String(20), nullable=False, default="webm")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transcription: Mapped[str | None] = mapped_column(Text, nullable=True)
