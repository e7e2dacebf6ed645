"""
VoiceConnect Backend: Transcription Service Interface
=======================================================

What:  Speech-to-text for uploaded audio.
How:   `TranscriptionService` is the contract; `MockTranscriptionService`
       is the only implementation and returns canned text. A real provider
       (Whisper, Google Speech-to-Text) plugs in by subclassing.

The mock is deterministic: the transcript is picked from a hash of the
audio bytes, so the same file always yields the same text.
"""

import hashlib
import logging
from abc import ABC, abstractmethod

import aiofiles

logger = logging.getLogger(__name__)


class TranscriptionService(ABC):
    """
    Contract:
        - transcribe() accepts a local file path and returns text
        - implementations raise on failure; the audio pipeline logs the
          error and continues without a transcript
    """

    @abstractmethod
    async def transcribe(self, file_path: str, language: str = "en") -> str:
        ...


class MockTranscriptionService(TranscriptionService):
    CANNED_TRANSCRIPTS = (
        "Hello everyone, this is my first audio post on VoiceConnect. I'm really "
        "excited to be part of this community and share my thoughts through voice.",
        "Good morning! Today I wanted to talk about the importance of audio "
        "communication. There's something about hearing someone's voice that text "
        "just can't capture.",
        "Hey there! Just a quick update about what's been happening lately. Things "
        "have been busy but good, and I'm grateful for a place to express myself.",
        "Welcome to my audio journal! Today I'm reflecting on voice-based social "
        "media. It feels more personal than text-based platforms.",
        "Hi friends! Something has been on my mind lately: how has audio changed the "
        "way we connect with others online?",
    )
    SPANISH_TRANSCRIPT = (
        "Hola a todos, esta es mi primera publicación de audio en VoiceConnect. "
        "Estoy muy emocionado de ser parte de esta comunidad."
    )

    async def transcribe(self, file_path: str, language: str = "en") -> str:
        if language == "es":
            return self.SPANISH_TRANSCRIPT

        async with aiofiles.open(file_path, "rb") as f:
            content = await f.read()
        digest = hashlib.sha256(content).digest()
        transcript = self.CANNED_TRANSCRIPTS[digest[0] % len(self.CANNED_TRANSCRIPTS)]
        logger.debug("Mock transcription produced %d chars", len(transcript))
        return transcript


transcription_service: TranscriptionService = MockTranscriptionService()
