"""
VoiceConnect Backend: Shared Response Schemas
===============================================

Every JSON response shares one envelope:

    success  →  {"success": true, "message": "...", "data": {...}}
    failure  →  {"success": false, "message": "...", "error": "not_found",
                 "request_id": "a1b2c3d4"}

Routes declare `response_model=ApiResponse[SomePayload]` so the OpenAPI docs
show the concrete payload inside the envelope.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = Field(default=True, description="False only on error responses")
    message: Optional[str] = Field(default=None, description="Human-readable summary")
    data: Optional[T] = Field(default=None, description="Endpoint-specific payload")


class FieldError(BaseModel):
    field: str = Field(description="Dotted location of the invalid input, e.g. body.username")
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "success": false,
            "message": "Cannot connect with yourself",
            "error": "validation_error",
            "request_id": "550e8400"
        }
    """

    success: bool = False
    message: str = Field(description="Human-readable error description")
    error: str = Field(description="Machine-readable error code")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    errors: Optional[List[FieldError]] = Field(
        default=None, description="Per-field problems (validation failures only)"
    )
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Extra context such as retry_after"
    )


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    google_drive: str = Field(
        description="Drive client status: configured, not_configured, circuit_open"
    )
    uptime_seconds: float = Field(description="Seconds since service started")


# ══════════════════════════════════════════════════════════════════════════
# Pagination
# ══════════════════════════════════════════════════════════════════════════


class PaginationParams(BaseModel):
    """
    Offset pagination shared by every list endpoint.

    limit: 1..100, default 20
    skip:  >= 0, default 0
    """

    limit: int = Field(default=20, ge=1, le=100)
    skip: int = Field(default=0, ge=0)


def pagination_params(
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    skip: int = Query(default=0, ge=0, description="Number of items to skip"),
) -> PaginationParams:
    """FastAPI dependency; out-of-range values become a 400 Validation failed."""
    return PaginationParams(limit=limit, skip=skip)


class PageMeta(BaseModel):
    total: int = Field(description="Total matching items, ignoring limit/skip")
    limit: int
    skip: int
