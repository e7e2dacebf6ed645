"""
VoiceConnect Backend: Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for every error scenario a request can hit.
Why:   Services raise these instead of building error responses; the global
       handlers in main.py turn them into the `{success: false, ...}` envelope
       with the right status code.
How:   Each exception carries a user-facing message and an optional context
       dict (logged server-side, only partially returned to the client).

Exception Hierarchy:
    VoiceConnectError (base)
    ├── ValidationError             → 400 Bad Request
    ├── AuthenticationError         → 401 Unauthorized
    ├── PermissionDeniedError       → 403 Forbidden
    ├── NotFoundError               → 404 Not Found
    ├── RateLimitExceededError      → 429 Too Many Requests
    ├── FileStorageError            → 500 Internal Server Error
    ├── DatabaseError               → 500 Internal Server Error
    ├── NotImplementedFeatureError  → 501 Not Implemented
    ├── StorageServiceError         → 503 Service Unavailable (Google Drive)
    └── CircuitBreakerOpenError     → 503 Service Unavailable (circuit open)
"""

from typing import Any, Dict, Optional


class VoiceConnectError(Exception):
    """
    Base exception for all VoiceConnect application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, not returned verbatim)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(VoiceConnectError):
    """
    Raised when client input breaks a business rule.

    Schema-level problems (wrong types, missing fields) are caught earlier by
    FastAPI's RequestValidationError; this one covers the rules services
    enforce: duplicate usernames, self-connections, comment depth, audio
    duration and format limits.
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(VoiceConnectError):
    """Missing, malformed or expired bearer token, or bad credentials."""

    status_code = 401
    error_code = "authentication_error"

    def __init__(
        self,
        message: str = "Access denied. No token provided.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(VoiceConnectError):
    """The caller is authenticated but may not touch this resource."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(VoiceConnectError):
    """
    Raised when a requested resource does not exist (or is soft-deleted).

    SQLAlchemy returns None for missing rows; services convert that into
    this exception so the route layer never checks for None.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(VoiceConnectError):
    """Client exceeded a rate limit window; carries seconds until retry."""

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                f"Too many requests. Please wait {retry_after} seconds before trying again."
            )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class FileStorageError(VoiceConnectError):
    """Local spool directory could not be written or read."""

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(VoiceConnectError):
    """
    A query or write failed unexpectedly.

    The client always gets a generic message; the original exception type
    goes into context for the server log.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotImplementedFeatureError(VoiceConnectError):
    status_code = 501
    error_code = "not_implemented"

    def __init__(
        self,
        message: str = "This feature is not available yet",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageServiceError(VoiceConnectError):
    """
    Google Drive failed after all retries (or rejected the credentials).

    503 tells the client the upstream is temporarily unavailable and the
    request can be retried; retry_after comes from the circuit breaker.
    """

    status_code = 503
    error_code = "storage_service_error"

    def __init__(
        self,
        message: str = "Cloud storage service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(VoiceConnectError):
    """
    Raised while the Drive circuit breaker is OPEN.

        CLOSED → (N consecutive failures) → OPEN
        OPEN → (recovery_timeout elapsed) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    """

    status_code = 503
    error_code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Cloud storage is temporarily unavailable due to repeated failures. "
            f"Please retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
