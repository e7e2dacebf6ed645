"""
VoiceConnect Backend: User Model
==================================

What:  ORM model for the `users` table: credentials, profile, Drive
       storage token, privacy/notification settings and denormalized stats.
Why:   A single wide row keeps profile reads to one query. The stats
       counters (connection_count, post_count, audio_minutes) are maintained
       by the services with atomic UPDATE ... SET x = x + 1 statements.

Privacy:
    password_hash, google_drive_token and private_contact never leave the
    server through the public profile schema. private_contact is shown only
    to accepted connections once the owner has revealed it.
"""

import time
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from voiceconnect.database import Base
from voiceconnect.models.base import TimestampMixin, UUIDPrimaryKeyMixin


STORAGE_GOOGLE_DRIVE = "google_drive"
STORAGE_PREFERENCES = (STORAGE_GOOGLE_DRIVE,)

REVEAL_POLICY_MANUAL = "manual"
REVEAL_POLICY_AUTO_CONNECTED = "auto_connected"
CONTACT_REVEAL_POLICIES = (REVEAL_POLICY_MANUAL, REVEAL_POLICY_AUTO_CONNECTED)


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    # ── Credentials ───────────────────────────────────────────────────────
    username: Mapped[str] = mapped_column(String(30), unique=True, index=True, nullable=False)
    # Stored lowercased by AuthService so the unique index is case-insensitive
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Profile ───────────────────────────────────────────────────────────
    display_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    private_contact: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_revealed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ── Storage ───────────────────────────────────────────────────────────
    storage_preference: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STORAGE_GOOGLE_DRIVE
    )
    # {access_token, refresh_token, scope, token_type, expiry_date (epoch ms)}
    google_drive_token: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # ── Settings ──────────────────────────────────────────────────────────
    auto_accept_connections: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contact_reveal_policy: Mapped[str] = mapped_column(
        String(20), nullable=False, default=REVEAL_POLICY_MANUAL
    )
    notify_new_connection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_contact_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_new_post: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # ── Stats ─────────────────────────────────────────────────────────────
    connection_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    post_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    audio_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def has_google_drive(self) -> bool:
        return bool(self.google_drive_token and self.google_drive_token.get("access_token"))

    def is_google_drive_token_expired(self) -> bool:
        """True when there is no token, no expiry, or the expiry has passed."""
        token = self.google_drive_token or {}
        expiry = token.get("expiry_date")
        if not expiry:
            return True
        return int(expiry) < int(time.time() * 1000)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"
