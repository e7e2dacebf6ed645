"""
VoiceConnect Backend: Audio Upload Pipeline
=============================================

What:  Validates an uploaded audio clip, measures it, pushes it to the
       author's Google Drive and (optionally) transcribes it.
Who:   PostService.create_post() and CommentService.create_comment().

Pipeline (cheapest checks first):
    1. Drive connected?          → 400 "Google Drive not connected"
    2. Extension allow-list      → 400
    3. Size limit                → 400
    4. MIME sniffing (libmagic)  → 400 for renamed non-audio files
    5. Spool to upload_dir       (UUID filename, no user input in the path)
    6. Duration: mutagen probe, else the client-reported `duration` field
       (MediaRecorder webm has no duration header mutagen can read)
    7. Upload to Drive as voiceconnect_<epoch ms>.<ext>
    8. Transcription stub (failures are logged, never fatal)
    9. Spooled file removed, whatever happened above
"""

import asyncio
import logging
import math
import os
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import magic
import mutagen
from mutagen import MutagenError
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.config import settings
from voiceconnect.exceptions import FileStorageError, ValidationError
from voiceconnect.models.user import STORAGE_GOOGLE_DRIVE, User
from voiceconnect.services.drive_service import drive_service
from voiceconnect.services.transcription_service import transcription_service

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".mp3", ".wav", ".webm", ".ogg", ".m4a"}

# libmagic reports WebM and MPEG-4 containers as video/* even when they
# only carry an audio track
ALLOWED_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/vnd.wave",
    "audio/webm",
    "video/webm",
    "audio/ogg",
    "application/ogg",
    "audio/mp4",
    "audio/m4a",
    "audio/x-m4a",
    "video/mp4",
}


@dataclass
class ProcessedAudio:
    storage_type: str
    file_id: str
    url: str
    duration: int
    format: str
    file_size: int
    transcription: Optional[str] = None

    def as_columns(self) -> Dict[str, Any]:
        """Keyword arguments for an AudioMixin model (Post, Comment)."""
        data = asdict(self)
        data["audio_url"] = data.pop("url")
        data["audio_format"] = data.pop("format")
        return data


class AudioService:
    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.upload_dir).resolve()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("AudioService initialized with upload_dir=%s", self.upload_dir)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"Audio format '{ext or filename}' is not supported. "
                    f"Allowed formats: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="audio",
                context={"extension": ext},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_mb = settings.max_audio_size / (1024 * 1024)
        if actual_size == 0:
            raise ValidationError(message="Audio file is empty", field="audio")
        if (content_length and content_length > settings.max_audio_size) or (
            actual_size > settings.max_audio_size
        ):
            raise ValidationError(
                message=f"Audio file exceeds maximum size of {max_mb:.0f}MB",
                field="audio",
                context={"max_size": settings.max_audio_size, "actual_size": actual_size},
            )

    def validate_mime_type(self, content: bytes) -> str:
        """Sniffs the real type from magic bytes; renamed files are rejected."""
        try:
            mime_type = magic.from_buffer(content[:8192], mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify audio file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=f"File content type '{mime_type}' is not a supported audio format",
                field="audio",
                context={"detected_mime": mime_type},
            )
        return mime_type

    # ── Local spool ───────────────────────────────────────────────────────

    async def spool(self, content: bytes, extension: str) -> str:
        path = self.upload_dir / f"{uuid.uuid4()}{extension}"
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to spool upload to %s: %s", path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded audio. Please try again.",
                context={"os_error": str(e)},
            )
        return str(path)

    async def cleanup_file(self, file_path: str) -> None:
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.debug("Removed spooled file %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    # ── Duration ──────────────────────────────────────────────────────────

    @staticmethod
    def probe_duration(file_path: str) -> Optional[float]:
        """Length in seconds from the container headers, or None if unreadable."""
        try:
            audio = mutagen.File(file_path)
        except MutagenError as e:
            logger.debug("mutagen could not parse %s: %s", Path(file_path).name, str(e))
            return None
        if audio is None or audio.info is None:
            return None
        length = getattr(audio.info, "length", None)
        return float(length) if length else None

    async def resolve_duration(
        self,
        file_path: str,
        client_duration: Optional[float],
        max_duration: int,
    ) -> int:
        """
        Whole seconds of audio, bounded by min_audio_duration..max_duration.

        The probed value wins; the client's figure is only a fallback.
        """
        probed = await asyncio.to_thread(self.probe_duration, file_path)
        duration = probed if probed else client_duration
        if not duration or not math.isfinite(duration) or duration <= 0:
            raise ValidationError(message="Unable to determine audio duration", field="duration")

        seconds = int(round(duration))
        if seconds < settings.min_audio_duration:
            raise ValidationError(
                message=f"Audio must be at least {settings.min_audio_duration} second(s) long",
                field="duration",
            )
        if seconds > max_duration:
            raise ValidationError(
                message=f"Audio exceeds maximum duration of {max_duration} seconds",
                field="duration",
                context={"duration": seconds, "max_duration": max_duration},
            )
        return seconds

    # ── Full pipeline ─────────────────────────────────────────────────────

    async def process_upload(
        self,
        db: AsyncSession,
        user: User,
        filename: str,
        content: bytes,
        max_duration: int,
        client_duration: Optional[float] = None,
        content_length: Optional[int] = None,
        language: str = "en",
    ) -> ProcessedAudio:
        """
        Runs the whole pipeline and returns the stored audio's metadata.

        Raises:
            ValidationError: Drive not connected, bad format/size/duration
            StorageServiceError / CircuitBreakerOpenError: Drive unavailable
            FileStorageError: The spool directory is not writable
        """
        token = await drive_service.ensure_valid_token(db, user)

        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        mime_type = self.validate_mime_type(content)

        spooled: Optional[str] = None
        try:
            spooled = await self.spool(content, ext)
            duration = await self.resolve_duration(spooled, client_duration, max_duration)

            drive_name = f"voiceconnect_{int(time.time() * 1000)}{ext}"
            uploaded = await drive_service.upload_file(token, spooled, drive_name, mime_type)

            transcription = None
            if settings.transcription_enabled:
                try:
                    transcription = await transcription_service.transcribe(spooled, language)
                except Exception as e:
                    logger.warning("Transcription failed for user %s: %s", user.id, str(e))

            logger.info(
                "Audio processed for user %s: file_id=%s duration=%ds size=%d",
                user.id,
                uploaded["file_id"],
                duration,
                len(content),
            )
            return ProcessedAudio(
                storage_type=STORAGE_GOOGLE_DRIVE,
                file_id=uploaded["file_id"],
                url=uploaded["url"],
                duration=duration,
                format=ext.lstrip("."),
                file_size=len(content),
                transcription=transcription,
            )
        finally:
            if spooled:
                await self.cleanup_file(spooled)

    async def delete_remote(self, db: AsyncSession, user: User, file_id: str) -> bool:
        """
        Best-effort removal of a Drive file; failures are logged and reported
        as False so deleting a post never fails on storage.
        """
        try:
            token = await drive_service.ensure_valid_token(db, user)
            return await drive_service.delete_file(token, file_id)
        except Exception as e:
            logger.warning("Could not delete Drive file %s for user %s: %s", file_id, user.id, str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
audio_service = AudioService()
