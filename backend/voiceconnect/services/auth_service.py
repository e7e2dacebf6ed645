"""
VoiceConnect Backend: Auth Service
====================================

What:  Registration, login, token refresh, bearer-token resolution and the
       Google Drive OAuth hand-off.
How:   bcrypt hashes (run in a worker thread: 12 rounds take ~250ms and
       would otherwise stall the event loop) and PyJWT access/refresh pairs.

Error messages are deliberately vague where they could leak account
existence: a wrong email and a wrong password both answer
"Invalid credentials".
"""

import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.exceptions import (
    AuthenticationError,
    DatabaseError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.models.base import utcnow
from voiceconnect.models.user import User
from voiceconnect.schemas.auth import AuthPayload, LoginRequest, RegisterRequest, TokenPair
from voiceconnect.schemas.user import UserPrivate
from voiceconnect.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from voiceconnect.services.drive_service import drive_service

logger = logging.getLogger(__name__)


def issue_tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
    )


class AuthService:
    async def register(self, db: AsyncSession, data: RegisterRequest) -> AuthPayload:
        """
        Creates an account and signs it in.

        Raises:
            ValidationError: Email or username already in use
        """
        try:
            email_taken = await db.scalar(select(User.id).where(User.email == data.email))
            if email_taken:
                raise ValidationError(message="Email already registered", field="email")

            username_taken = await db.scalar(
                select(User.id).where(func.lower(User.username) == data.username.lower())
            )
            if username_taken:
                raise ValidationError(message="Username already taken", field="username")

            password_hash = await asyncio.to_thread(hash_password, data.password)
            user = User(
                username=data.username,
                email=data.email,
                password_hash=password_hash,
                display_name=data.display_name or data.username,
                last_login=utcnow(),
            )
            db.add(user)
            await db.flush()
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("Registration failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        logger.info("User registered: %s (%s)", user.username, user.id)
        tokens = issue_tokens(user)
        return AuthPayload(user=UserPrivate.from_user(user), **tokens.model_dump())

    async def login(self, db: AsyncSession, data: LoginRequest) -> AuthPayload:
        user = await db.scalar(select(User).where(User.email == data.email))
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid credentials")

        valid = await asyncio.to_thread(verify_password, data.password, user.password_hash)
        if not valid:
            logger.info("Failed login attempt for user %s", user.id)
            raise AuthenticationError("Invalid credentials")

        user.last_login = utcnow()
        await db.flush()
        logger.info("User logged in: %s", user.id)

        tokens = issue_tokens(user)
        return AuthPayload(user=UserPrivate.from_user(user), **tokens.model_dump())

    async def refresh(self, db: AsyncSession, refresh_token: Optional[str]) -> TokenPair:
        if not refresh_token:
            raise AuthenticationError("Refresh token required")

        user_id = decode_refresh_token(refresh_token)
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid token.")
        return issue_tokens(user)

    async def authenticate_token(self, db: AsyncSession, token: str) -> User:
        """
        Resolves a bearer access token to an active user and stamps
        `last_login`.

        Raises:
            AuthenticationError("Invalid token."): bad signature, expired,
                wrong token type, unknown or deactivated user
        """
        user_id = decode_access_token(token)
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid token.", context={"user_id": str(user_id)})

        user.last_login = utcnow()
        return user

    # ── Google Drive OAuth ────────────────────────────────────────────────

    def google_auth_url(self, user: User) -> str:
        # state carries the user id through Google's redirect to the callback
        return drive_service.get_auth_url(state=str(user.id))

    async def connect_google_drive(self, db: AsyncSession, user: User, code: str) -> UserPrivate:
        token = await drive_service.exchange_code(code)
        user.google_drive_token = token
        await db.flush()
        logger.info("Google Drive connected for user %s", user.id)
        return UserPrivate.from_user(user)

    async def handle_google_callback(
        self, db: AsyncSession, code: Optional[str], state: Optional[str]
    ) -> bool:
        """
        Completes the browser-based OAuth flow.

        Returns True when the token was stored; any failure is logged and
        reported as False so the route can redirect with ?google_drive=error.
        """
        if not code or not state:
            logger.warning("Google OAuth callback without code or state")
            return False
        try:
            user = await db.get(User, uuid.UUID(state))
        except ValueError:
            logger.warning("Google OAuth callback with malformed state")
            return False
        if user is None or not user.is_active:
            logger.warning("Google OAuth callback for unknown user %s", state)
            return False

        try:
            await self.connect_google_drive(db, user, code)
        except VoiceConnectError as e:
            logger.warning("Google OAuth callback failed for user %s: %s", user.id, e.message)
            return False
        return True


auth_service = AuthService()
