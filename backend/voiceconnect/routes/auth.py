"""
VoiceConnect Backend: Auth Routes
===================================

    POST /api/auth/register         201 {user, access_token, refresh_token}
    POST /api/auth/login            200 same shape
    POST /api/auth/logout           acknowledgement only (tokens are stateless)
    POST /api/auth/refresh          new token pair
    GET  /api/auth/google/url       consent screen URL for Drive access
    GET  /api/auth/google/callback  browser redirect target from Google
    POST /api/auth/google-drive     exchange a code obtained by the frontend

register / login / refresh share the `auth` rate limiter (5 per 15 min per IP).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.config import settings
from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user
from voiceconnect.middleware.rate_limit import auth_limiter
from voiceconnect.models.user import User
from voiceconnect.schemas.auth import (
    AuthPayload,
    GoogleAuthUrl,
    GoogleDriveConnectRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
)
from voiceconnect.schemas.common import ApiResponse, ErrorResponse
from voiceconnect.schemas.user import UserPrivate
from voiceconnect.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=ApiResponse[AuthPayload],
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    dependencies=[Depends(auth_limiter)],
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await auth_service.register(db, body)
    return ApiResponse(message="User registered successfully", data=payload)


@router.post(
    "/login",
    response_model=ApiResponse[AuthPayload],
    responses={401: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    dependencies=[Depends(auth_limiter)],
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await auth_service.login(db, body)
    return ApiResponse(message="Login successful", data=payload)


@router.post("/logout", response_model=ApiResponse[None], summary="Sign out")
async def logout(user: User = Depends(get_current_user)) -> ApiResponse[None]:
    # Tokens are stateless; the client discards them
    logger.info("User logged out: %s", user.id)
    return ApiResponse(message="Logout successful")


@router.post(
    "/refresh",
    response_model=ApiResponse[TokenPair],
    responses={401: {"model": ErrorResponse}},
    dependencies=[Depends(auth_limiter)],
    summary="Exchange a refresh token for a new token pair",
)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[TokenPair]:
    tokens = await auth_service.refresh(db, body.refresh_token)
    return ApiResponse(message="Token refreshed", data=tokens)


@router.get(
    "/google/url",
    response_model=ApiResponse[GoogleAuthUrl],
    summary="Google Drive consent URL",
)
async def google_auth_url(user: User = Depends(get_current_user)) -> ApiResponse[GoogleAuthUrl]:
    return ApiResponse(data=GoogleAuthUrl(auth_url=auth_service.google_auth_url(user)))


@router.get(
    "/google/callback",
    response_class=RedirectResponse,
    summary="OAuth redirect target",
    description="Stores the Drive token for the user in `state` and sends the browser back to the frontend settings page.",
)
async def google_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    connected = await auth_service.handle_google_callback(db, code, state)
    outcome = "success" if connected else "error"
    return RedirectResponse(
        url=f"{settings.frontend_url}/settings?google_drive={outcome}",
        status_code=302,
    )


@router.post(
    "/google-drive",
    response_model=ApiResponse[UserPrivate],
    responses={400: {"model": ErrorResponse}},
    summary="Connect Google Drive with an authorization code",
)
async def connect_google_drive(
    body: GoogleDriveConnectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserPrivate]:
    profile = await auth_service.connect_google_drive(db, user, body.code)
    return ApiResponse(message="Google Drive connected successfully", data=profile)
