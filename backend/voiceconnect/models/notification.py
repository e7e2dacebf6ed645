"""Persisted notifications, written by the NotificationService drain loop."""

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from voiceconnect.database import Base
from voiceconnect.models.base import UUIDPrimaryKeyMixin, utcnow


NOTIFICATION_NEW_POST = "new_post"
NOTIFICATION_POST_LIKE = "post_like"
NOTIFICATION_POST_COMMENT = "post_comment"
NOTIFICATION_CONNECTION_REQUEST = "connection_request"
NOTIFICATION_CONNECTION_ACCEPTED = "connection_accepted"
NOTIFICATION_CONTACT_REVEAL_REQUEST = "contact_reveal_request"
NOTIFICATION_CONTACT_REVEAL_ACCEPTED = "contact_reveal_accepted"

NOTIFICATION_TYPES = (
    NOTIFICATION_NEW_POST,
    NOTIFICATION_POST_LIKE,
    NOTIFICATION_POST_COMMENT,
    NOTIFICATION_CONNECTION_REQUEST,
    NOTIFICATION_CONNECTION_ACCEPTED,
    NOTIFICATION_CONTACT_REVEAL_REQUEST,
    NOTIFICATION_CONTACT_REVEAL_ACCEPTED,
)


class Notification(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    # Ids of the actor / post / comment, as strings
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
