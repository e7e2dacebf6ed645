"""
VoiceConnect Backend: Google Drive Storage Service
====================================================

What:  Stores audio files in each user's own Google Drive (the hidden
       `appDataFolder`), plus the OAuth helper that obtains the token.
Why:   Users own their audio; the backend only keeps file ids and URLs.
How:   google-api-python-client with per-user OAuth2 credentials. The client
       library is synchronous, so every call runs in a worker thread
       (asyncio.to_thread) to keep the event loop free.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient
       failures (network errors, HTTP 429/5xx)
    2. Circuit breaker shared by all users: when Drive itself is down,
       requests fail fast with 503 instead of stacking up retries
    3. Client errors (HTTP 4xx other than 429) are not retried and do not
       count against the breaker; they are the caller's problem

Token handling:
    Tokens are stored on the user row as
        {access_token, refresh_token, scope, token_type, expiry_date (epoch ms)}
    An expired token is refreshed with google-auth before use and written
    back to the user row.
"""

import asyncio
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from voiceconnect.config import settings
from voiceconnect.exceptions import (
    CircuitBreakerOpenError,
    StorageServiceError,
    ValidationError,
)
from voiceconnect.models.user import User

logger = logging.getLogger(__name__)

# Google may add "openid" to the granted scopes; oauthlib treats that as an
# error unless relaxed.
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.appdata",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
APP_FOLDER = "appDataFolder"
FILE_FIELDS = "id, name, mimeType, size, webViewLink, webContentLink, createdTime, modifiedTime"

_TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the Drive API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → On success: CLOSED
            → On failure: back to OPEN (timer restarts)

    Single-process only; each uvicorn worker keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError: OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Drive circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Drive circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Drive circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Drive circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


def _is_transient(exc: BaseException) -> bool:
    """Network-level errors and throttling/5xx responses are worth retrying."""
    if isinstance(exc, HttpError):
        return exc.resp.status in _TRANSIENT_STATUSES
    if isinstance(exc, RefreshError):
        return False
    return isinstance(exc, (ConnectionError, TimeoutError, OSError))


def _http_status(exc: BaseException) -> Optional[int]:
    if isinstance(exc, HttpError):
        return exc.resp.status
    return None


# ══════════════════════════════════════════════════════════════════════════
# Token helpers
# ══════════════════════════════════════════════════════════════════════════

def credentials_to_token(
    credentials: Credentials, fallback_refresh_token: Optional[str] = None
) -> Dict[str, Any]:
    """Converts google-auth credentials into the stored token dict."""
    expiry_ms = None
    if credentials.expiry is not None:
        # google-auth keeps expiry as a naive UTC datetime
        expiry_ms = int(credentials.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return {
        "access_token": credentials.token,
        "refresh_token": credentials.refresh_token or fallback_refresh_token,
        "scope": " ".join(credentials.scopes or SCOPES),
        "token_type": "Bearer",
        "expiry_date": expiry_ms,
    }


def token_to_credentials(token: Dict[str, Any]) -> Credentials:
    expiry = None
    if token.get("expiry_date"):
        expiry = datetime.fromtimestamp(
            int(token["expiry_date"]) / 1000, tz=timezone.utc
        ).replace(tzinfo=None)
    scope = token.get("scope")
    return Credentials(
        token=token.get("access_token"),
        refresh_token=token.get("refresh_token"),
        token_uri=TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        scopes=scope.split() if scope else SCOPES,
        expiry=expiry,
    )


# ══════════════════════════════════════════════════════════════════════════
# Drive Service
# ══════════════════════════════════════════════════════════════════════════

class GoogleDriveService:
    """
    Per-user Google Drive operations behind one shared circuit breaker.

    Error Handling Chain:
        API call fails → tenacity retries transient errors
        → retries exhausted → record circuit breaker failure → 503
        → threshold reached → later calls rejected instantly (503)
    """

    def __init__(self):
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "GoogleDriveService initialized: circuit_breaker(threshold=%d, recovery=%ds)",
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(settings.google_client_id and settings.google_client_secret)

    # ── OAuth ─────────────────────────────────────────────────────────────

    def _flow(self, state: Optional[str] = None) -> Flow:
        client_config = {
            "web": {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [settings.google_redirect_uri],
            }
        }
        # No PKCE: the verifier would have to survive between the
        # consent redirect and the callback request
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=settings.google_redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    def get_auth_url(self, state: str) -> str:
        """Consent URL with offline access so Google issues a refresh token."""
        auth_url, _ = self._flow(state=state).authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",
        )
        return auth_url

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trades an authorization code for a token dict."""
        flow = self._flow()
        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
        except Exception as e:
            logger.warning("Google OAuth code exchange failed: %s", str(e))
            raise ValidationError(
                message="Failed to connect Google Drive. Please try again.",
                field="code",
                context={"error_type": type(e).__name__},
            )
        return credentials_to_token(flow.credentials)

    async def ensure_valid_token(self, db: AsyncSession, user: User) -> Dict[str, Any]:
        """
        Returns a usable token for `user`, refreshing and persisting it first
        when it has expired.

        Raises:
            ValidationError: The user never connected Drive, or the refresh
                token was revoked.
        """
        if not user.has_google_drive:
            raise ValidationError(message="Google Drive not connected", field="storage")

        token = dict(user.google_drive_token)
        if not user.is_google_drive_token_expired():
            return token

        if not token.get("refresh_token"):
            raise ValidationError(
                message="Google Drive authorization expired. Please reconnect Google Drive.",
                field="storage",
            )

        credentials = token_to_credentials(token)
        try:
            await asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
        except RefreshError as e:
            logger.warning("Drive token refresh rejected for user %s: %s", user.id, str(e))
            raise ValidationError(
                message="Google Drive authorization expired. Please reconnect Google Drive.",
                field="storage",
            )
        except Exception as e:
            logger.error("Drive token refresh failed for user %s: %s", user.id, str(e))
            raise StorageServiceError(
                message="Could not refresh Google Drive access. Please try again later.",
                context={"error_type": type(e).__name__},
            )

        new_token = credentials_to_token(credentials, fallback_refresh_token=token["refresh_token"])
        user.google_drive_token = new_token
        await db.flush()
        logger.info("Refreshed Google Drive token for user %s", user.id)
        return new_token

    def _build_client(self, token: Dict[str, Any]):
        return build(
            "drive",
            "v3",
            credentials=token_to_credentials(token),
            cache_discovery=False,
        )

    # ── Guarded execution ─────────────────────────────────────────────────

    async def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        """
        Runs a blocking Drive call through the breaker and the retry policy.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Run `fn` in a worker thread, retrying transient errors
            3. Record success/failure in the breaker
        """
        call_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            result = await self._execute_with_retry(fn, operation, call_id)
        except HttpError as e:
            if not _is_transient(e):
                # 4xx: Drive is up, the request was wrong
                raise
            self.circuit_breaker.record_failure()
            logger.error("[%s] Drive %s failed after retries: %s", call_id, operation, str(e))
            raise StorageServiceError(
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "operation": operation, "status": _http_status(e)},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Unexpected Drive error during %s: %s",
                call_id,
                operation,
                str(e),
                exc_info=True,
            )
            raise StorageServiceError(
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "operation": operation, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _execute_with_retry(self, fn: Callable[[], Any], operation: str, call_id: str) -> Any:
        start_time = time.time()
        try:
            result = await asyncio.to_thread(fn)
        except Exception as e:
            logger.warning(
                "[%s] Drive %s attempt failed after %.0fms: %s",
                call_id,
                operation,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise
        logger.debug(
            "[%s] Drive %s completed in %.0fms", call_id, operation, (time.time() - start_time) * 1000
        )
        return result

    # ── File operations ───────────────────────────────────────────────────

    async def upload_file(
        self,
        token: Dict[str, Any],
        local_path: str,
        filename: str,
        mime_type: str,
    ) -> Dict[str, Any]:
        """
        Uploads a local file into the user's app folder and makes it readable
        by anyone with the link.

        Returns:
            {file_id, name, mime_type, size, url, direct_link, view_link}
        """

        def _upload() -> Dict[str, Any]:
            client = self._build_client(token)
            media = MediaFileUpload(local_path, mimetype=mime_type, resumable=False)
            created = (
                client.files()
                .create(
                    body={"name": filename, "parents": [APP_FOLDER]},
                    media_body=media,
                    fields=FILE_FIELDS,
                )
                .execute()
            )
            try:
                client.permissions().create(
                    fileId=created["id"],
                    body={"role": "reader", "type": "anyone"},
                ).execute()
            except HttpError as e:
                # Playback then needs the owner's token; the upload still counts
                logger.warning("Could not share Drive file %s: %s", created["id"], str(e))
            return created

        try:
            created = await self._call("upload", _upload)
        except HttpError as e:
            # 401/403: revoked access or a full Drive
            raise ValidationError(
                message=(
                    "Google Drive rejected the upload. Reconnect Google Drive "
                    "or free up storage space."
                ),
                field="audio",
                context={"status": _http_status(e)},
            )
        logger.info("Uploaded %s to Google Drive as %s", filename, created["id"])
        return {
            "file_id": created["id"],
            "name": created.get("name", filename),
            "mime_type": created.get("mimeType", mime_type),
            "size": int(created.get("size") or 0),
            "url": f"https://www.googleapis.com/drive/v3/files/{created['id']}?alt=media",
            "direct_link": created.get("webContentLink"),
            "view_link": created.get("webViewLink"),
        }

    async def delete_file(self, token: Dict[str, Any], file_id: str) -> bool:
        """Deletes a file. A file that is already gone counts as deleted."""

        def _delete() -> None:
            self._build_client(token).files().delete(fileId=file_id).execute()

        try:
            await self._call("delete", _delete)
        except HttpError as e:
            if _http_status(e) == 404:
                logger.info("Drive file %s already deleted", file_id)
                return True
            raise StorageServiceError(
                message="Failed to delete file from Google Drive",
                context={"file_id": file_id, "status": _http_status(e)},
            )
        logger.info("Deleted Drive file %s", file_id)
        return True

    async def get_file_metadata(self, token: Dict[str, Any], file_id: str) -> Dict[str, Any]:
        def _get() -> Dict[str, Any]:
            return self._build_client(token).files().get(fileId=file_id, fields=FILE_FIELDS).execute()

        try:
            return await self._call("get_metadata", _get)
        except HttpError as e:
            raise StorageServiceError(
                message="Failed to read file metadata from Google Drive",
                context={"file_id": file_id, "status": _http_status(e)},
            )

    async def file_exists(self, token: Dict[str, Any], file_id: str) -> bool:
        def _get() -> Dict[str, Any]:
            return self._build_client(token).files().get(fileId=file_id, fields="id").execute()

        try:
            await self._call("exists", _get)
        except HttpError as e:
            if _http_status(e) == 404:
                return False
            raise StorageServiceError(
                message="Failed to check file on Google Drive",
                context={"file_id": file_id, "status": _http_status(e)},
            )
        return True

    async def get_storage_quota(self, token: Dict[str, Any]) -> Dict[str, int]:
        """
        Returns {used, total, available, usage_in_drive} in bytes.

        total is 0 for accounts without a limit (Workspace pooled storage),
        in which case available is reported as 0 too.
        """

        def _about() -> Dict[str, Any]:
            return self._build_client(token).about().get(fields="storageQuota").execute()

        try:
            about = await self._call("quota", _about)
        except HttpError as e:
            raise StorageServiceError(
                message="Failed to read Google Drive storage quota",
                context={"status": _http_status(e)},
            )

        quota = about.get("storageQuota", {})
        used = int(quota.get("usage") or 0)
        total = int(quota.get("limit") or 0)
        return {
            "used": used,
            "total": total,
            "available": max(total - used, 0),
            "usage_in_drive": int(quota.get("usageInDrive") or 0),
        }

    async def list_app_files(self, token: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Lists everything this app stored in the user's app folder."""

        def _list() -> List[Dict[str, Any]]:
            client = self._build_client(token)
            files: List[Dict[str, Any]] = []
            page_token = None
            while True:
                response = (
                    client.files()
                    .list(
                        spaces=APP_FOLDER,
                        fields="nextPageToken, files(id, name, mimeType, size, createdTime, modifiedTime)",
                        pageSize=100,
                        pageToken=page_token,
                    )
                    .execute()
                )
                files.extend(response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    return files

        try:
            return await self._call("list", _list)
        except HttpError as e:
            raise StorageServiceError(
                message="Failed to list Google Drive files",
                context={"status": _http_status(e)},
            )


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker, which must be shared across requests
drive_service = GoogleDriveService()
