"""
VoiceConnect Backend: Rate Limiting
=====================================

Two layers share one sliding-window counter:

    RateLimitMiddleware   global per-IP ceiling on every request
                          (settings.rate_limit_requests per rate_limit_window)
    RateLimiter           per-route FastAPI dependency keyed by client IP
    UserRateLimiter       per-route dependency keyed by the authenticated user

Named limiters:

    auth                 5 / 15 min   IP     register, login, refresh
    upload              10 / hour     IP     audio uploads
    social              50 / 15 min   IP     likes, listens, comments
    search              20 / min      IP     user search
    contact_reveal       5 / day      IP     contact reveal requests
    post_creation        5 / hour     user   new posts
    connection_request  20 / day      user   connection requests

Algorithm: Sliding Window Log
    Each key keeps the timestamps of its hits inside the window. A hit is
    rejected when the window already holds `limit` timestamps; retry_after
    is the time until the oldest one falls out.

Everything is bypassed when settings.rate_limit_enabled is False (tests,
local development).

In-memory and per-process: with several workers each one counts on its
own, so effective limits multiply by the worker count.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from fastapi import Depends
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from voiceconnect.config import settings
from voiceconnect.dependencies import get_current_user
from voiceconnect.exceptions import RateLimitExceededError
from voiceconnect.middleware.logging import client_ip
from voiceconnect.models.user import User

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

CLEANUP_EVERY = 1000


class SlidingWindowCounter:
    """Timestamps of recent hits per key, trimmed to the last `window` seconds."""

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._checks = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Records a hit for `key`.

        Returns None when the hit is allowed, otherwise the number of seconds
        until the next hit would be (the rejected hit is not recorded).
        """
        now = time.monotonic() if now is None else now
        window_start = now - self.window
        hits = self._hits[key]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.limit:
            return int(hits[0] + self.window - now) + 1

        hits.append(now)
        self._checks += 1
        if self._checks % CLEANUP_EVERY == 0:
            self._cleanup(window_start)
        return None

    def _cleanup(self, window_start: float) -> None:
        inactive = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in inactive:
            del self._hits[key]
        if inactive:
            logger.debug("Dropped %d inactive rate limit keys", len(inactive))

    def reset(self) -> None:
        self._hits.clear()
        self._checks = 0


# ══════════════════════════════════════════════════════════════════════════
# Global middleware
# ══════════════════════════════════════════════════════════════════════════

class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.counter = SlidingWindowCounter(
            settings.rate_limit_requests, settings.rate_limit_window
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.rate_limit_enabled or request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        ip = client_ip(request)
        retry_after = self.counter.hit(ip)
        if retry_after is not None:
            logger.warning(
                "Global rate limit exceeded for IP %s (%d requests / %ds)",
                ip,
                self.counter.limit,
                self.counter.window,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "rate_limit_exceeded",
                    "message": (
                        f"Too many requests. Please wait {retry_after} seconds before trying again."
                    ),
                    "details": {"retry_after": retry_after},
                    "request_id": getattr(request.state, "request_id", ""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)


# ══════════════════════════════════════════════════════════════════════════
# Per-route dependencies
# ══════════════════════════════════════════════════════════════════════════

_registry: List["RateLimiter"] = []


class RateLimiter:
    """
    FastAPI dependency enforcing a named limit per client IP.

    Usage:
        @router.post("/login", dependencies=[Depends(auth_limiter)])
    """

    def __init__(self, name: str, limit: int, window: int, message: Optional[str] = None):
        self.name = name
        self.message = message
        self.counter = SlidingWindowCounter(limit, window)
        _registry.append(self)

    def check(self, key: str) -> None:
        if not settings.rate_limit_enabled:
            return
        retry_after = self.counter.hit(key)
        if retry_after is not None:
            logger.warning("Rate limit '%s' exceeded for %s", self.name, key)
            raise RateLimitExceededError(
                retry_after=retry_after,
                message=self.message,
                context={"limiter": self.name},
            )

    async def __call__(self, request: Request) -> None:
        self.check(client_ip(request))


class UserRateLimiter(RateLimiter):
    """Same as RateLimiter, keyed by the authenticated user instead of the IP."""

    async def __call__(self, user: User = Depends(get_current_user)) -> None:
        self.check(str(user.id))


def reset_rate_limits() -> None:
    for limiter in _registry:
        limiter.counter.reset()


auth_limiter = RateLimiter(
    "auth", 5, 15 * MINUTE,
    message="Too many authentication attempts. Please try again later.",
)
upload_limiter = RateLimiter(
    "upload", 10, HOUR,
    message="Upload limit reached. Please try again later.",
)
social_limiter = RateLimiter("social", 50, 15 * MINUTE)
search_limiter = RateLimiter(
    "search", 20, MINUTE,
    message="Too many searches. Please slow down.",
)
contact_reveal_limiter = RateLimiter(
    "contact_reveal", 5, DAY,
    message="Contact reveal request limit reached. Please try again tomorrow.",
)
post_creation_limiter = UserRateLimiter(
    "post_creation", 5, HOUR,
    message="Post limit reached. You can create 5 posts per hour.",
)
connection_request_limiter = UserRateLimiter(
    "connection_request", 20, DAY,
    message="Connection request limit reached. Please try again tomorrow.",
)
