"""
VoiceConnect Backend: Audio Pipeline Tests
============================================

What:  Tests for AudioService validation and the full upload pipeline.
How:   libmagic, mutagen and Google Drive are patched; the spool directory
       is a pytest tmp_path.

What we test:
    ✅ Extension allow-list (case-insensitive)
    ✅ Empty and oversized files rejected
    ✅ MIME sniffing rejects renamed non-audio files
    ✅ Probed duration wins over the client's figure
    ✅ Duration bounds (missing, non-finite, too long)
    ✅ process_upload returns Drive metadata and removes the spooled file
    ✅ Users without Drive are rejected before anything is written
    ✅ A failing transcriber leaves the upload intact
    ✅ Mock transcripts are deterministic per file, with a Spanish variant
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from voiceconnect.config import settings
from voiceconnect.exceptions import ValidationError
from voiceconnect.models.user import User
from voiceconnect.services.audio_service import AudioService, ProcessedAudio
from voiceconnect.services.transcription_service import MockTranscriptionService


class TestValidation:

    @pytest.fixture(autouse=True)
    def _service(self, tmp_path):
        self.service = AudioService(upload_dir=str(tmp_path))

    @pytest.mark.parametrize("filename", ["clip.mp3", "clip.WAV", "rec.webm", "a.ogg", "b.m4a"])
    def test_allowed_extensions(self, filename):
        assert self.service.validate_extension(filename) == "." + filename.rsplit(".", 1)[1].lower()

    @pytest.mark.parametrize("filename", ["notes.txt", "video.avi", "noextension"])
    def test_rejected_extensions(self, filename):
        with pytest.raises(ValidationError) as exc_info:
            self.service.validate_extension(filename)
        assert exc_info.value.field == "audio"
        assert "not supported" in exc_info.value.message

    def test_empty_file_rejected(self):
        with pytest.raises(ValidationError, match="Audio file is empty"):
            self.service.validate_size(content_length=None, actual_size=0)

    def test_oversized_body_rejected(self):
        with pytest.raises(ValidationError, match="exceeds maximum size"):
            self.service.validate_size(settings.max_audio_size + 1, actual_size=10)

    def test_size_within_limit_passes(self):
        self.service.validate_size(content_length=1024, actual_size=1024)

    def test_mime_type_accepted(self):
        with patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="audio/mpeg"):
            assert self.service.validate_mime_type(b"ID3....") == "audio/mpeg"

    def test_webm_reported_as_video_is_accepted(self):
        with patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="video/webm"):
            assert self.service.validate_mime_type(b"\x1aE\xdf\xa3") == "video/webm"

    def test_renamed_text_file_rejected(self):
        with patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="text/plain"):
            with pytest.raises(ValidationError, match="not a supported audio format"):
                self.service.validate_mime_type(b"hello world")


class TestDuration:

    @pytest.fixture(autouse=True)
    def _service(self, tmp_path):
        self.service = AudioService(upload_dir=str(tmp_path))

    @pytest.mark.asyncio
    async def test_probed_duration_wins(self):
        with patch.object(AudioService, "probe_duration", return_value=42.6):
            seconds = await self.service.resolve_duration("x.mp3", client_duration=5, max_duration=600)
        assert seconds == 43

    @pytest.mark.asyncio
    async def test_client_duration_used_when_probe_fails(self):
        """MediaRecorder webm files carry no duration header."""
        with patch.object(AudioService, "probe_duration", return_value=None):
            seconds = await self.service.resolve_duration("x.webm", client_duration=12.4, max_duration=600)
        assert seconds == 12

    @pytest.mark.asyncio
    async def test_unknown_duration_rejected(self):
        with patch.object(AudioService, "probe_duration", return_value=None):
            with pytest.raises(ValidationError, match="Unable to determine audio duration"):
                await self.service.resolve_duration("x.webm", client_duration=None, max_duration=600)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("client_duration", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_client_duration_rejected(self, client_duration):
        with patch.object(AudioService, "probe_duration", return_value=None):
            with pytest.raises(ValidationError, match="Unable to determine audio duration"):
                await self.service.resolve_duration(
                    "x.webm", client_duration=client_duration, max_duration=600
                )

    @pytest.mark.asyncio
    async def test_comment_length_limit(self):
        with patch.object(AudioService, "probe_duration", return_value=121.0):
            with pytest.raises(ValidationError, match="exceeds maximum duration of 120 seconds"):
                await self.service.resolve_duration("x.mp3", client_duration=None, max_duration=120)


class TestProcessUpload:

    @pytest.fixture(autouse=True)
    def _service(self, tmp_path):
        self.upload_dir = tmp_path
        self.service = AudioService(upload_dir=str(tmp_path))

    def _user(self, token=None):
        return User(id=uuid.uuid4(), username="alice", email="alice@example.com",
                    password_hash="x", google_drive_token=token)

    @pytest.mark.asyncio
    async def test_upload_success(self, mock_db_session, drive_token):
        """Metadata comes back from Drive and the spooled copy is removed."""
        user = self._user(drive_token)
        with patch("voiceconnect.services.audio_service.drive_service") as mock_drive, \
             patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="audio/mpeg"), \
             patch.object(AudioService, "probe_duration", return_value=30.2):
            mock_drive.ensure_valid_token = AsyncMock(return_value=drive_token)
            mock_drive.upload_file = AsyncMock(
                return_value={"file_id": "drive-file-1", "url": "https://drive/x?alt=media"}
            )

            result = await self.service.process_upload(
                mock_db_session,
                user,
                filename="hello.mp3",
                content=b"ID3" + b"\x00" * 64,
                max_duration=settings.max_post_duration,
            )

        assert isinstance(result, ProcessedAudio)
        assert result.file_id == "drive-file-1"
        assert result.duration == 30
        assert result.format == "mp3"
        assert result.file_size == 67
        assert result.transcription is None

        _, _, drive_name, mime_type = mock_drive.upload_file.await_args.args
        assert drive_name.startswith("voiceconnect_") and drive_name.endswith(".mp3")
        assert mime_type == "audio/mpeg"
        assert list(self.upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_spooled_file_removed_on_failure(self, mock_db_session, drive_token):
        user = self._user(drive_token)
        with patch("voiceconnect.services.audio_service.drive_service") as mock_drive, \
             patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="audio/ogg"), \
             patch.object(AudioService, "probe_duration", return_value=None):
            mock_drive.ensure_valid_token = AsyncMock(return_value=drive_token)
            mock_drive.upload_file = AsyncMock()

            with pytest.raises(ValidationError):
                await self.service.process_upload(
                    mock_db_session, user, "clip.ogg", b"OggS" + b"\x00" * 32, max_duration=600
                )

            mock_drive.upload_file.assert_not_awaited()
        assert list(self.upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_drive_not_connected(self, mock_db_session):
        """The real token check runs first; nothing is spooled."""
        user = self._user(token=None)
        with pytest.raises(ValidationError, match="Google Drive not connected"):
            await self.service.process_upload(
                mock_db_session, user, "clip.mp3", b"ID3", max_duration=600
            )
        assert list(self.upload_dir.iterdir()) == []

    def test_as_columns_maps_model_fields(self):
        audio = ProcessedAudio(
            storage_type="google_drive", file_id="f", url="u", duration=3, format="webm", file_size=9
        )
        columns = audio.as_columns()
        assert columns["audio_url"] == "u"
        assert columns["audio_format"] == "webm"
        assert "url" not in columns and "format" not in columns

    @pytest.mark.asyncio
    async def test_transcription_failure_keeps_upload(
        self, mock_db_session, drive_token, monkeypatch
    ):
        monkeypatch.setattr(settings, "transcription_enabled", True)
        user = self._user(drive_token)
        with patch("voiceconnect.services.audio_service.drive_service") as mock_drive, \
             patch("voiceconnect.services.audio_service.transcription_service") as mock_stt, \
             patch("voiceconnect.services.audio_service.magic.from_buffer", return_value="audio/mpeg"), \
             patch.object(AudioService, "probe_duration", return_value=8.0):
            mock_drive.ensure_valid_token = AsyncMock(return_value=drive_token)
            mock_drive.upload_file = AsyncMock(return_value={"file_id": "f-2", "url": "u"})
            mock_stt.transcribe = AsyncMock(side_effect=RuntimeError("speech backend down"))

            result = await self.service.process_upload(
                mock_db_session, user, "hello.mp3", b"ID3" + b"\x00" * 16, max_duration=600
            )

        mock_stt.transcribe.assert_awaited_once()
        assert result.file_id == "f-2"
        assert result.transcription is None
        assert list(self.upload_dir.iterdir()) == []


class TestMockTranscription:

    @pytest.mark.asyncio
    async def test_same_bytes_same_transcript(self, tmp_path):
        service = MockTranscriptionService()
        first = tmp_path / "a.webm"
        second = tmp_path / "b.webm"
        first.write_bytes(b"identical audio")
        second.write_bytes(b"identical audio")

        text = await service.transcribe(str(first))

        assert text in MockTranscriptionService.CANNED_TRANSCRIPTS
        assert await service.transcribe(str(second)) == text

    @pytest.mark.asyncio
    async def test_spanish_variant(self, tmp_path):
        clip = tmp_path / "c.webm"
        clip.write_bytes(b"hola")
        text = await MockTranscriptionService().transcribe(str(clip), language="es")
        assert text == MockTranscriptionService.SPANISH_TRANSCRIPT
