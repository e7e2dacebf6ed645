"""
VoiceConnect Backend: Contact Reveal Routes
=============================================

Connected users can ask each other to reveal private contact details.
Requests are limited to 5 per day per IP (`contact_reveal` limiter).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user
from voiceconnect.middleware.rate_limit import contact_reveal_limiter
from voiceconnect.models.contact_reveal import REVEAL_ACCEPTED
from voiceconnect.models.user import User
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.contact import (
    ContactRequestBody,
    ContactRespondBody,
    ContactRevealList,
    ContactRevealResponse,
    ContactStatus,
    RevealedContactList,
)
from voiceconnect.services.contact_service import contact_service

router = APIRouter(prefix="/api/contact", tags=["Contact"])


@router.get("/requests", response_model=ApiResponse[ContactRevealList])
async def pending_requests(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ContactRevealList]:
    return ApiResponse(data=await contact_service.pending_received(db, user, page))


@router.get("/revealed", response_model=ApiResponse[RevealedContactList])
async def revealed_contacts(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[RevealedContactList]:
    return ApiResponse(data=await contact_service.revealed(db, user, page))


@router.get("/sent", response_model=ApiResponse[ContactRevealList])
async def sent_requests(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ContactRevealList]:
    return ApiResponse(data=await contact_service.sent(db, user, page))


@router.post(
    "/{user_id}/request",
    status_code=201,
    response_model=ApiResponse[ContactRevealResponse],
    responses={
        400: {"description": "Not connected, already revealed or already pending", "model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    dependencies=[Depends(contact_reveal_limiter)],
    summary="Ask a connection to reveal their contact details",
)
async def request_reveal(
    user_id: uuid.UUID,
    body: Optional[ContactRequestBody] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ContactRevealResponse]:
    reveal = await contact_service.request_reveal(
        db, user, user_id, body.message if body else None
    )
    if reveal.status == REVEAL_ACCEPTED:
        return ApiResponse(message="Contact information revealed", data=reveal)
    return ApiResponse(message="Contact reveal request sent", data=reveal)


@router.get("/{user_id}/status", response_model=ApiResponse[ContactStatus])
async def reveal_status(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ContactStatus]:
    return ApiResponse(data=await contact_service.status(db, user, user_id))


@router.put(
    "/{request_id}",
    response_model=ApiResponse[ContactRevealResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def respond_to_request(
    request_id: uuid.UUID,
    body: ContactRespondBody,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ContactRevealResponse]:
    reveal = await contact_service.respond(db, user, request_id, body.status)
    return ApiResponse(message=f"Contact reveal request {reveal.status}", data=reveal)


@router.delete(
    "/{request_id}",
    response_model=ApiResponse[None],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def cancel_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await contact_service.cancel(db, user, request_id)
    return ApiResponse(message="Contact reveal request cancelled")
