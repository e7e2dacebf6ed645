"""
VoiceConnect Backend: Health Check and API Index
==================================================

GET /health probes the dependencies a request needs:

    database      SELECT 1 through the shared engine
    google_drive  OAuth client configured, and the circuit breaker state

Status levels:
    healthy    everything available
    degraded   Drive unconfigured or its circuit is open (reads still work)
    unhealthy  database unreachable

The Drive check never calls Google: a probe every few seconds would burn
API quota, and per-user tokens mean there is no single account to test.
"""

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import text

from voiceconnect import __version__
from voiceconnect.database import engine
from voiceconnect.schemas.common import ApiResponse, HealthResponse
from voiceconnect.services.drive_service import CircuitBreaker, drive_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()

API_PREFIXES = {
    "auth": "/api/auth",
    "users": "/api/users",
    "connections": "/api/connections",
    "posts": "/api/posts",
    "comments": "/api/comments",
    "contact": "/api/contact",
    "notifications": "/api/notifications",
    "health": "/health",
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    drive_status = "configured"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not drive_service.is_configured:
        drive_status = "not_configured"
    elif drive_service.circuit_breaker.state == CircuitBreaker.OPEN:
        drive_status = "circuit_open"
    if drive_status != "configured" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        google_drive=drive_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )


@router.get("/api", response_model=ApiResponse[Dict[str, Any]], summary="API index")
async def api_index() -> ApiResponse[Dict[str, Any]]:
    return ApiResponse(
        message="VoiceConnect API",
        data={"version": __version__, "endpoints": API_PREFIXES, "docs": "/docs"},
    )
