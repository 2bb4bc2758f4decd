"""Transcription channel interface and an in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

import structlog

from .base import (
    AudioConfig,
    OnChannelCloseCallback,
    OnChannelErrorCallback,
    OnTranscriptCallback,
    TranscriptEvent,
)

logger = structlog.get_logger(__name__)


class TranscriptionChannel(ABC):
    """
    A streaming speech-to-text connection.

    Audio goes in as raw PCM frames; transcript updates, errors and the
    close notification come back through the registered callbacks.
    Callbacks are plain functions invoked on the event loop.
    """

    def __init__(self) -> None:
        self._on_transcript: Optional[OnTranscriptCallback] = None
        self._on_error: Optional[OnChannelErrorCallback] = None
        self._on_close: Optional[OnChannelCloseCallback] = None
        self._is_connected: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass

    @abstractmethod
    async def connect(self, audio_config: AudioConfig) -> None:
        """
        Open the channel.

        Args:
            audio_config: Format of the frames that will be sent
        """
        pass

    @abstractmethod
    async def send_audio(self, audio: bytes) -> None:
        """Send one PCM frame."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel. Safe to call more than once."""
        pass

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    def set_handlers(
        self,
        on_transcript: Optional[OnTranscriptCallback] = None,
        on_error: Optional[OnChannelErrorCallback] = None,
        on_close: Optional[OnChannelCloseCallback] = None,
    ) -> None:
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_close = on_close

    def _emit_transcript(self, event: TranscriptEvent) -> None:
        if self._on_transcript:
            self._on_transcript(event)

    def _emit_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

    def _emit_close(self) -> None:
        self._is_connected = False
        if self._on_close:
            self._on_close()


class MockTranscriptionChannel(TranscriptionChannel):
    """
    In-memory channel for tests and offline demos.

    Records every frame sent and lets the caller push transcripts,
    errors or a close event as if they came from the provider.
    """

    def __init__(self, fail_connect: bool = False) -> None:
        super().__init__()
        self.fail_connect = fail_connect
        self.frames: List[bytes] = []
        self.audio_config: Optional[AudioConfig] = None
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.logger = logger.bind(channel="mock")

    @property
    def name(self) -> str:
        return "mock"

    async def connect(self, audio_config: AudioConfig) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectionError("Mock channel refused connection")
        self.audio_config = audio_config
        self._is_connected = True
        self.logger.debug("Mock channel connected", sample_rate=audio_config.sample_rate)

    async def send_audio(self, audio: bytes) -> None:
        if not self._is_connected:
            raise ConnectionError("Mock channel is not connected")
        self.frames.append(audio)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._is_connected:
            self._emit_close()

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def push_interim(self, text: str) -> None:
        self._emit_transcript(TranscriptEvent(text=text, is_final=False))

    def push_final(self, text: str, speech_final: bool = True) -> None:
        self._emit_transcript(
            TranscriptEvent(text=text, is_final=True, speech_final=speech_final)
        )

    def push_error(self, message: str) -> None:
        self._emit_error(message)

    def push_close(self) -> None:
        self._emit_close()

    async def drain(self) -> None:
        """Yield to the loop so queued frame sends complete."""
        for _ in range(5):
            await asyncio.sleep(0)
