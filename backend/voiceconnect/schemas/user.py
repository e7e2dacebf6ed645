"""
VoiceConnect Backend: User Schemas
====================================

Three views of a user, from least to most revealing:

    UserSummary  → embedded as author / other party in lists
    UserPublic   → public profile (GET /api/users/{id}, search, suggestions)
    UserPrivate  → the caller's own account (GET /api/users/me, auth responses)

password_hash and google_drive_token never appear in any of them.
private_contact only appears in UserPrivate, and in UserProfile when the
viewer is a connection and the owner has revealed it.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_serializer

from voiceconnect.models.user import User
from voiceconnect.schemas.common import PageMeta


class UserSummary(BaseModel):
    id: uuid.UUID
    username: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None

    model_config = {"from_attributes": True}


class UserPublic(UserSummary):
    bio: Optional[str] = None
    connection_count: int = 0
    post_count: int = 0
    audio_minutes: int = 0
    created_at: datetime


class UserSettings(BaseModel):
    auto_accept_connections: bool
    contact_reveal_policy: str
    notify_new_connection: bool
    notify_contact_request: bool
    notify_new_post: bool

    model_config = {"from_attributes": True}


class UserPrivate(UserPublic):
    email: str
    private_contact: Optional[str] = None
    contact_revealed: bool
    storage_preference: str
    google_drive_connected: bool = Field(description="True once an OAuth token is stored")
    settings: UserSettings
    last_login: Optional[datetime] = None
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserPrivate":
        return cls(
            **UserPublic.model_validate(user).model_dump(),
            email=user.email,
            private_contact=user.private_contact,
            contact_revealed=user.contact_revealed,
            storage_preference=user.storage_preference,
            google_drive_connected=user.has_google_drive,
            settings=UserSettings.model_validate(user),
            last_login=user.last_login,
            updated_at=user.updated_at,
        )


class CurrentUserProfile(UserPrivate):
    pending_requests: int = Field(description="Pending connection requests received")


class ConnectionState(BaseModel):
    is_connected: bool = False
    status: Optional[str] = Field(
        default=None, description="pending, accepted, rejected, blocked or null"
    )


class UserProfile(UserPublic):
    """Public profile as seen by a (possibly anonymous) viewer."""

    connection: ConnectionState
    private_contact: Optional[str] = None

    @model_serializer(mode="wrap")
    def _hide_private_contact(self, handler):
        data = handler(self)
        if self.private_contact is None:
            data.pop("private_contact", None)
        return data


class UserSearchResult(UserPublic):
    connection_status: Optional[str] = None


class UserSearchResponse(PageMeta):
    users: List[UserSearchResult]
    query: str


class UserList(PageMeta):
    users: List[UserPublic]


class UserStats(BaseModel):
    connection_count: int
    post_count: int
    audio_minutes: int
    pending_requests: int


class StorageQuota(BaseModel):
    """Bytes, as reported by the Drive about() endpoint."""

    used: int
    total: int
    available: int
    usage_in_drive: int


# ══════════════════════════════════════════════════════════════════════════
# Request bodies
# ══════════════════════════════════════════════════════════════════════════


class UserSettingsUpdate(BaseModel):
    auto_accept_connections: Optional[bool] = None
    contact_reveal_policy: Optional[Literal["manual", "auto_connected"]] = None
    notify_new_connection: Optional[bool] = None
    notify_contact_request: Optional[bool] = None
    notify_new_post: Optional[bool] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    bio: Optional[str] = Field(default=None, max_length=500)
    private_contact: Optional[str] = Field(default=None, max_length=255)
    settings: Optional[UserSettingsUpdate] = None


class StoragePreferenceUpdate(BaseModel):
    storage_preference: str = Field(description="Only google_drive is supported")
