"""Deepgram streaming transcription channel."""

from typing import Optional

import structlog
from deepgram import (
    DeepgramClient,
    DeepgramClientOptions,
    LiveOptions,
    LiveTranscriptionEvents,
)

from ..config import Settings, get_settings
from .base import AudioConfig, TranscriptEvent
from .channel import TranscriptionChannel

logger = structlog.get_logger(__name__)


class DeepgramChannel(TranscriptionChannel):
    """
    Deepgram live transcription over a websocket.

    Requests interim results, smart formatting, VAD events and a 1.5 s
    utterance-end window so a short spoken command finalizes promptly.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[DeepgramClient] = None,
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self.api_key = api_key or self.settings.deepgram_api_key

        if client is None:
            if not self.api_key:
                raise ValueError("Deepgram API key is required")
            config = DeepgramClientOptions(verbose=self.settings.debug)
            client = DeepgramClient(self.api_key, config)
        self.client = client

        self._connection = None
        self.logger = logger.bind(channel="deepgram")

    @property
    def name(self) -> str:
        return "deepgram"

    def build_options(self, audio_config: AudioConfig) -> LiveOptions:
        settings = self.settings
        return LiveOptions(
            model=settings.deepgram_model,
            language=settings.deepgram_language,
            smart_format=settings.deepgram_smart_format,
            interim_results=settings.deepgram_interim_results,
            vad_events=settings.deepgram_vad_events,
            utterance_end_ms=str(settings.deepgram_utterance_end_ms),
            endpointing=settings.deepgram_endpointing,
            encoding=audio_config.encoding,
            sample_rate=audio_config.sample_rate,
            channels=audio_config.channels,
        )

    async def connect(self, audio_config: AudioConfig) -> None:
        """Connect to the Deepgram streaming API."""
        try:
            self._connection = self.client.listen.asyncwebsocket.v("1")

            self._connection.on(LiveTranscriptionEvents.Open, self._on_open)
            self._connection.on(LiveTranscriptionEvents.Transcript, self._on_transcript)
            self._connection.on(LiveTranscriptionEvents.UtteranceEnd, self._on_utterance_end)
            self._connection.on(LiveTranscriptionEvents.Error, self._on_error)
            self._connection.on(LiveTranscriptionEvents.Close, self._on_close)

            started = await self._connection.start(self.build_options(audio_config))
            if not started:
                raise ConnectionError("Failed to start Deepgram connection")

            self._is_connected = True
            self.logger.info(
                "Connected to Deepgram",
                model=self.settings.deepgram_model,
                sample_rate=audio_config.sample_rate,
            )

        except Exception as e:
            self.logger.error("Failed to connect to Deepgram", error=str(e))
            self._connection = None
            self._is_connected = False
            raise

    async def _on_open(self, *args, **kwargs) -> None:
        self._is_connected = True
        self.logger.debug("Deepgram connection opened")

    async def _on_transcript(self, *args, **kwargs) -> None:
        """Handle transcript event from Deepgram."""
        result = kwargs.get("result") or (args[1] if len(args) > 1 else None)
        if not result:
            return

        alternatives = result.channel.alternatives
        if not alternatives:
            return

        alt = alternatives[0]
        text = alt.transcript or ""
        if not text.strip():
            return

        event = TranscriptEvent(
            text=text,
            is_final=bool(result.is_final),
            speech_final=bool(getattr(result, "speech_final", False)),
            confidence=alt.confidence,
            timestamp=result.start,
        )

        log_method = self.logger.info if event.is_final else self.logger.debug
        log_method("Transcript received", text=text[:100], is_final=event.is_final)

        self._emit_transcript(event)

    async def _on_utterance_end(self, *args, **kwargs) -> None:
        self.logger.debug("Utterance ended")

    async def _on_error(self, *args, **kwargs) -> None:
        error = kwargs.get("error") or (args[1] if len(args) > 1 else "Unknown error")
        self.logger.error("Deepgram error", error=str(error))
        self._emit_error(str(error))

    async def _on_close(self, *args, **kwargs) -> None:
        self.logger.info("Deepgram connection closed")
        self._emit_close()

    async def send_audio(self, audio: bytes) -> None:
        """Send audio data to Deepgram."""
        if not self._is_connected or not self._connection:
            raise ConnectionError("Not connected to Deepgram")
        await self._connection.send(audio)

    async def disconnect(self) -> None:
        """Disconnect from Deepgram."""
        if self._connection:
            try:
                await self._connection.finish()
            except Exception as e:
                self.logger.error("Error disconnecting from Deepgram", error=str(e))
            finally:
                self._connection = None
                self._is_connected = False

        self.logger.info("Disconnected from Deepgram")
