"""
Speech Intent Extractor

Streams microphone audio to a transcription channel and watches the final
transcripts for a ``show me <concept>`` command. The first matching command
locks the session: no later transcript can change it, and capture is torn
down on a separate task so teardown never runs inside a channel callback.
"""

import asyncio
from typing import Callable, Optional

import numpy as np
import structlog

from ..errors import CapturePermissionDenied, TranscriptionChannelError
from .base import (
    AudioConfig,
    CaptureState,
    TranscriptEvent,
    TranscriptionSession,
    float_to_pcm16,
    parse_command,
)
from .capture import AudioCapture
from .channel import TranscriptionChannel

logger = structlog.get_logger(__name__)

ChannelFactory = Callable[[], TranscriptionChannel]
CaptureFactory = Callable[[], AudioCapture]


class SpeechIntentExtractor:
    """
    Capture state machine: Idle -> Capturing -> Locked.

    Every capture gets a fresh ``TranscriptionSession`` plus a fresh channel
    and device from the factories. Frames are forwarded only while the
    session is unlocked and the channel reports connected; both checks run
    per frame, once before PCM conversion and again just before sending.
    """

    def __init__(
        self,
        channel_factory: ChannelFactory,
        capture_factory: CaptureFactory,
        on_partial: Optional[Callable[[str], None]] = None,
        on_command: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[TranscriptionChannelError], None]] = None,
        on_transcript: Optional[Callable[[TranscriptEvent], None]] = None,
    ):
        self._channel_factory = channel_factory
        self._capture_factory = capture_factory
        self.on_partial = on_partial
        self.on_command = on_command
        self.on_error = on_error
        self.on_transcript = on_transcript

        self._state = CaptureState.IDLE
        self.session: Optional[TranscriptionSession] = None
        self.is_listening = False

        self._channel: Optional[TranscriptionChannel] = None
        self._capture: Optional[AudioCapture] = None
        self._frames: Optional[asyncio.Queue] = None
        self._sender_task: Optional[asyncio.Task] = None
        self._teardown_task: Optional[asyncio.Task] = None
        self._command_future: Optional[asyncio.Future] = None

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self.session is not None and self.session.is_locked

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> TranscriptionSession:
        """
        Begin capturing into a new session.

        Raises:
            CapturePermissionDenied: the input device could not be acquired
            TranscriptionChannelError: the transcription channel did not open
        """
        if self._state == CaptureState.CAPTURING and self.session is not None:
            return self.session
        if self._state == CaptureState.LOCKED:
            await self.stop()

        session = TranscriptionSession()
        self.session = session
        self._command_future = asyncio.get_running_loop().create_future()
        log = logger.bind(session_id=session.id)

        try:
            capture = self._capture_factory()
            self._capture = capture
            sample_rate = await capture.open()
        except CapturePermissionDenied as e:
            log.warning("Capture permission denied", error=e.message)
            session.error = e
            await self._abort(session)
            raise

        channel = None
        try:
            channel = self._channel_factory()
            channel.set_handlers(
                on_transcript=lambda event: self._handle_transcript(session, event),
                on_error=lambda message: self._handle_channel_error(session, message),
                on_close=lambda: self._handle_channel_close(session),
            )
            self._channel = channel
            await channel.connect(AudioConfig(sample_rate=sample_rate))
        except Exception as e:
            error = TranscriptionChannelError(
                f"Failed to open transcription channel: {e}",
                details={"channel": getattr(channel, "name", None)},
            )
            log.error("Transcription channel failed to open", error=str(e))
            session.error = error
            await self._abort(session)
            raise error from e

        try:
            self._frames = asyncio.Queue()
            self._sender_task = asyncio.create_task(self._send_frames(session, self._frames))
            capture.start(lambda frame: self._handle_frame(session, frame))
        except Exception as e:
            log.error("Capture failed to start", error=str(e))
            await self._abort(session)
            raise

        self._state = CaptureState.CAPTURING
        self.is_listening = True
        log.info("Capture started", channel=channel.name, sample_rate=sample_rate)
        return session

    async def stop(self) -> None:
        """Release the frame hook, device and channel. Idempotent."""
        teardown = self._teardown_task
        if (
            teardown is not None
            and not teardown.done()
            and teardown is not asyncio.current_task()
        ):
            await teardown

        await self._release()

        if self.session is not None:
            self.session.deactivate()
        self.is_listening = False
        if self._state != CaptureState.LOCKED:
            self._state = CaptureState.IDLE

        if self._command_future is not None and not self._command_future.done():
            self._command_future.set_result(None)

    async def wait_for_command(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Wait until a command locks the session.

        Returns None if capture is stopped before any command arrives.

        Raises:
            asyncio.TimeoutError: no command within ``timeout`` seconds
        """
        if self._command_future is None:
            raise RuntimeError("Capture has not been started")
        return await asyncio.wait_for(asyncio.shield(self._command_future), timeout)

    async def _abort(self, session: TranscriptionSession) -> None:
        await self._release()
        session.deactivate()
        self._state = CaptureState.IDLE
        self.is_listening = False
        if self._command_future is not None and not self._command_future.done():
            self._command_future.set_result(None)

    async def _release(self) -> None:
        sender, self._sender_task = self._sender_task, None
        capture, self._capture = self._capture, None
        channel, self._channel = self._channel, None
        self._frames = None

        try:
            if sender is not None:
                sender.cancel()
                try:
                    await sender
                except asyncio.CancelledError:
                    pass
        finally:
            try:
                if capture is not None:
                    await capture.close()
            finally:
                if channel is not None:
                    await channel.disconnect()

    async def _teardown(self, session: TranscriptionSession) -> None:
        await self._release()
        session.deactivate()
        self.is_listening = False
        logger.info("Capture stopped after command", session_id=session.id)

    # -------------------------------------------------------------------------
    # Frame path
    # -------------------------------------------------------------------------

    def _can_forward(self, session: TranscriptionSession) -> bool:
        channel = self._channel
        return (
            session is self.session
            and not session.is_locked
            and channel is not None
            and channel.is_connected
        )

    def _handle_frame(self, session: TranscriptionSession, frame: np.ndarray) -> None:
        if not self._can_forward(session) or self._frames is None:
            return
        self._frames.put_nowait(float_to_pcm16(frame))

    async def _send_frames(self, session: TranscriptionSession, frames: asyncio.Queue) -> None:
        while True:
            pcm = await frames.get()
            if not self._can_forward(session):
                continue
            try:
                await self._channel.send_audio(pcm)
            except Exception as e:
                logger.warning("Dropped audio frame", session_id=session.id, error=str(e))

    # -------------------------------------------------------------------------
    # Channel events
    # -------------------------------------------------------------------------

    def _handle_transcript(self, session: TranscriptionSession, event: TranscriptEvent) -> None:
        if session is not self.session or session.is_locked:
            return

        text = (event.text or "").strip()
        if not text:
            return

        if self.on_transcript:
            self.on_transcript(event)

        if not event.is_final:
            if session.apply_interim(text) and self.on_partial:
                self.on_partial(text)
            return

        command = parse_command(text)
        if command is None:
            if session.apply_final(text) and self.on_partial:
                self.on_partial(text)
            return

        if not session.lock(text, command):
            return

        self._state = CaptureState.LOCKED
        logger.info("Command locked", session_id=session.id, command=command)

        if self._command_future is not None and not self._command_future.done():
            self._command_future.set_result(command)
        if self.on_command:
            self.on_command(command)

        self._teardown_task = asyncio.get_running_loop().create_task(self._teardown(session))

    def _handle_channel_error(self, session: TranscriptionSession, message: str) -> None:
        if session is not self.session:
            return
        error = TranscriptionChannelError(message)
        session.error = error
        logger.error("Transcription channel error", session_id=session.id, error=message)
        if self.on_error:
            self.on_error(error)

    def _handle_channel_close(self, session: TranscriptionSession) -> None:
        if session is self.session:
            self.is_listening = False
