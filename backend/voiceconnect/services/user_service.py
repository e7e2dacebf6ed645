"""
VoiceConnect Backend: User Service
====================================

Profile reads and updates, search, stats and the storage settings.

Profile visibility:
    - the owner sees everything except credentials and the raw Drive token
    - other viewers see the public profile plus their connection state
    - private_contact is added for an accepted connection once the owner
      has revealed it
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.exceptions import (
    DatabaseError,
    NotFoundError,
    NotImplementedFeatureError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.models.connection import STATUS_ACCEPTED
from voiceconnect.models.user import STORAGE_PREFERENCES, User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.user import (
    ConnectionState,
    CurrentUserProfile,
    StorageQuota,
    UserPrivate,
    UserProfile,
    UserPublic,
    UserSearchResponse,
    UserSearchResult,
    UserStats,
    UserUpdate,
)
from voiceconnect.services.connection_service import connection_service
from voiceconnect.services.drive_service import drive_service

logger = logging.getLogger(__name__)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped.lower()}%"


class UserService:
    async def get_me(self, db: AsyncSession, user: User) -> CurrentUserProfile:
        pending = await connection_service.pending_count(db, user.id)
        return CurrentUserProfile(
            **UserPrivate.from_user(user).model_dump(),
            pending_requests=pending,
        )

    async def update_me(self, db: AsyncSession, user: User, data: UserUpdate) -> UserPrivate:
        """
        Applies only the fields present in the request body; an explicit
        null clears bio / private_contact.
        """
        provided = data.model_fields_set

        if data.display_name is not None:
            user.display_name = data.display_name
        if "bio" in provided:
            user.bio = data.bio
        if "private_contact" in provided:
            user.private_contact = data.private_contact

        if data.settings is not None:
            for name, value in data.settings.model_dump(exclude_none=True).items():
                setattr(user, name, value)

        try:
            await db.flush()
        except Exception as e:
            logger.error("Failed to update profile %s: %s", user.id, str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        logger.info("Profile updated for %s: %s", user.id, sorted(provided))
        return UserPrivate.from_user(user)

    async def get_profile(
        self, db: AsyncSession, user_id: uuid.UUID, viewer: Optional[User]
    ) -> UserProfile:
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        state = ConnectionState()
        if viewer is not None and viewer.id != user.id:
            connection = await connection_service.find_between(db, viewer.id, user.id)
            if connection is not None:
                state = ConnectionState(
                    is_connected=connection.status == STATUS_ACCEPTED,
                    status=connection.status,
                )

        private_contact = None
        if state.is_connected and user.contact_revealed:
            private_contact = user.private_contact

        return UserProfile(
            **UserPublic.model_validate(user).model_dump(),
            connection=state,
            private_contact=private_contact,
        )

    async def search(
        self, db: AsyncSession, viewer: User, query: str, page: PaginationParams
    ) -> UserSearchResponse:
        """Case-insensitive substring match on username, display name or email."""
        pattern = _like_pattern(query.strip())
        conditions = [
            User.id != viewer.id,
            User.is_active.is_(True),
            or_(
                func.lower(User.username).like(pattern, escape="\\"),
                func.lower(User.display_name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            ),
        ]
        try:
            total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
            users = (
                await db.execute(
                    select(User)
                    .where(*conditions)
                    .order_by(User.connection_count.desc(), User.username)
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).scalars().all()
            statuses = await connection_service.statuses_with(db, viewer.id, [u.id for u in users])
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("User search failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        return UserSearchResponse(
            users=[
                UserSearchResult(
                    **UserPublic.model_validate(u).model_dump(),
                    connection_status=statuses.get(u.id),
                )
                for u in users
            ],
            query=query,
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def get_stats(self, db: AsyncSession, user: User) -> UserStats:
        return UserStats(
            connection_count=user.connection_count,
            post_count=user.post_count,
            audio_minutes=user.audio_minutes,
            pending_requests=await connection_service.pending_count(db, user.id),
        )

    # ── Storage ───────────────────────────────────────────────────────────

    async def get_storage(self, db: AsyncSession, user: User) -> StorageQuota:
        token = await drive_service.ensure_valid_token(db, user)
        quota = await drive_service.get_storage_quota(token)
        return StorageQuota(**quota)

    async def set_storage_preference(
        self, db: AsyncSession, user: User, preference: str
    ) -> UserPrivate:
        if preference not in STORAGE_PREFERENCES:
            raise ValidationError(
                message="Invalid storage preference. Only google_drive is supported",
                field="storage_preference",
            )
        user.storage_preference = preference
        await db.flush()
        return UserPrivate.from_user(user)

    # ── Avatar ────────────────────────────────────────────────────────────

    async def upload_avatar(self, db: AsyncSession, user: User) -> UserPrivate:
        raise NotImplementedFeatureError("Avatar upload is not available yet")

    async def remove_avatar(self, db: AsyncSession, user: User) -> UserPrivate:
        user.avatar = None
        await db.flush()
        return UserPrivate.from_user(user)


user_service = UserService()
