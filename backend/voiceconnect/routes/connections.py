"""
VoiceConnect Backend: Connection Routes
=========================================

    GET    /api/connections/pending             requests received
    GET    /api/connections/sent                requests sent
    GET    /api/connections/me                  accepted connections
    GET    /api/connections/blocked             blocked rows, either side
    GET    /api/connections/suggestions         people you may know
    POST   /api/connections/{user_id}/request   201 pending, 200 auto-accepted
    PUT    /api/connections/{request_id}        accept / reject
    DELETE /api/connections/{user_id}           remove an accepted connection
    POST   /api/connections/{user_id}/block
    POST   /api/connections/{user_id}/unblock
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.dependencies import get_current_user
from voiceconnect.middleware.rate_limit import connection_request_limiter, social_limiter
from voiceconnect.models.connection import STATUS_ACCEPTED
from voiceconnect.models.user import User
from voiceconnect.schemas.common import ApiResponse, ErrorResponse, PaginationParams, pagination_params
from voiceconnect.schemas.connection import (
    BlockedUserList,
    ConnectedUserList,
    ConnectionList,
    ConnectionRequestBody,
    ConnectionRespondBody,
    ConnectionResponse,
)
from voiceconnect.schemas.user import UserList
from voiceconnect.services.connection_service import connection_service

router = APIRouter(prefix="/api/connections", tags=["Connections"])


@router.get("/pending", response_model=ApiResponse[ConnectionList])
async def pending_requests(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectionList]:
    return ApiResponse(data=await connection_service.pending_received(db, user, page))


@router.get("/sent", response_model=ApiResponse[ConnectionList])
async def sent_requests(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectionList]:
    return ApiResponse(data=await connection_service.pending_sent(db, user, page))


@router.get("/me", response_model=ApiResponse[ConnectedUserList])
async def my_connections(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectedUserList]:
    return ApiResponse(data=await connection_service.list_connections(db, user, page))


@router.get("/blocked", response_model=ApiResponse[BlockedUserList])
async def blocked_users(
    page: PaginationParams = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[BlockedUserList]:
    return ApiResponse(data=await connection_service.list_blocked(db, user, page))


@router.get("/suggestions", response_model=ApiResponse[UserList])
async def suggestions(
    limit: int = Query(default=10, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserList]:
    page = PaginationParams(limit=limit, skip=skip)
    return ApiResponse(data=await connection_service.suggestions(db, user, page))


@router.post(
    "/{user_id}/request",
    status_code=201,
    response_model=ApiResponse[ConnectionResponse],
    responses={
        200: {"description": "Recipient auto-accepts connections"},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    dependencies=[Depends(connection_request_limiter)],
    summary="Send a connection request",
)
async def send_request(
    user_id: uuid.UUID,
    response: Response,
    body: Optional[ConnectionRequestBody] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectionResponse]:
    connection, auto_accepted = await connection_service.send_request(
        db, user, user_id, body.message if body else None
    )
    if auto_accepted:
        response.status_code = 200
        return ApiResponse(message="Connection established", data=connection)
    return ApiResponse(message="Connection request sent", data=connection)


@router.put(
    "/{request_id}",
    response_model=ApiResponse[ConnectionResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[Depends(social_limiter)],
    summary="Accept or reject a connection request",
)
async def respond_to_request(
    request_id: uuid.UUID,
    body: ConnectionRespondBody,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectionResponse]:
    connection = await connection_service.respond(db, user, request_id, body.status)
    verb = "accepted" if body.status == STATUS_ACCEPTED else "rejected"
    return ApiResponse(message=f"Connection request {verb}", data=connection)


@router.delete(
    "/{user_id}",
    response_model=ApiResponse[None],
    responses={404: {"model": ErrorResponse}},
)
async def remove_connection(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await connection_service.remove(db, user, user_id)
    return ApiResponse(message="Connection removed")


@router.post("/{user_id}/block", response_model=ApiResponse[ConnectionResponse])
async def block_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConnectionResponse]:
    connection = await connection_service.block(db, user, user_id)
    return ApiResponse(message="User blocked", data=connection)


@router.post(
    "/{user_id}/unblock",
    response_model=ApiResponse[None],
    responses={404: {"model": ErrorResponse}},
)
async def unblock_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await connection_service.unblock(db, user, user_id)
    return ApiResponse(message="User unblocked")
