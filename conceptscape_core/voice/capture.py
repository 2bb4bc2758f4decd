"""
Microphone capture.

Requires sounddevice: pip install conceptscape[audio]
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Union

import numpy as np
import structlog

from ..errors import CapturePermissionDenied
from .base import OnFrameCallback

logger = structlog.get_logger(__name__)


class AudioCapture(ABC):
    """A source of mono float32 audio frames."""

    @abstractmethod
    async def open(self) -> int:
        """
        Acquire the input device.

        Returns:
            The device's native sample rate

        Raises:
            CapturePermissionDenied: device unavailable or access refused
        """
        pass

    @abstractmethod
    def start(self, on_frame: OnFrameCallback) -> None:
        """Begin delivering frames to ``on_frame`` on the event loop."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the device. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass


class SoundDeviceCapture(AudioCapture):
    """
    Default input device via PortAudio.

    The PortAudio callback runs on its own thread; frames are handed to
    the event loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        device: Optional[Union[int, str]] = None,
        blocksize: int = 4096,
        sample_rate: Optional[int] = None,
    ):
        try:
            import sounddevice
            self._sd = sounddevice
        except (ImportError, OSError) as e:
            raise CapturePermissionDenied(
                "sounddevice required. Install with: pip install conceptscape[audio]",
                details={"error": str(e)},
            )

        self.device = device
        self.blocksize = blocksize
        self.sample_rate = sample_rate
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_frame: Optional[OnFrameCallback] = None
        self.logger = logger.bind(capture="sounddevice")

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def open(self) -> int:
        self._loop = asyncio.get_running_loop()
        try:
            if self.sample_rate is None:
                info = self._sd.query_devices(self.device, kind="input")
                self.sample_rate = int(info["default_samplerate"])

            self._stream = self._sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._callback,
            )
        except (self._sd.PortAudioError, ValueError, OSError) as e:
            self.logger.error("Microphone unavailable", error=str(e))
            self._stream = None
            raise CapturePermissionDenied(
                "Microphone access denied or no input device available",
                details={"error": str(e)},
            )

        self.logger.info("Microphone opened", sample_rate=self.sample_rate)
        return self.sample_rate

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            self.logger.debug("Capture status", status=str(status))
        if self._loop is None or self._on_frame is None:
            return
        self._loop.call_soon_threadsafe(self._deliver, indata.copy())

    def _deliver(self, frame: np.ndarray) -> None:
        if self._on_frame is not None:
            self._on_frame(frame)

    def start(self, on_frame: OnFrameCallback) -> None:
        if self._stream is None:
            raise RuntimeError("Capture device is not open")
        self._on_frame = on_frame
        self._stream.start()

    async def close(self) -> None:
        self._on_frame = None
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except self._sd.PortAudioError as e:
                self.logger.warning("Error closing microphone", error=str(e))
            self.logger.info("Microphone released")


class MockAudioCapture(AudioCapture):
    """Feeds frames supplied by the caller. Used in tests and demos."""

    def __init__(self, sample_rate: int = 48000, deny: bool = False):
        self.sample_rate = sample_rate
        self.deny = deny
        self._open = False
        self._on_frame: Optional[OnFrameCallback] = None
        self.close_calls = 0
        self.history: List[str] = []

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> int:
        self.history.append("open")
        if self.deny:
            raise CapturePermissionDenied("Microphone access denied")
        self._open = True
        return self.sample_rate

    def start(self, on_frame: OnFrameCallback) -> None:
        self.history.append("start")
        self._on_frame = on_frame

    async def close(self) -> None:
        self.history.append("close")
        self.close_calls += 1
        self._open = False
        self._on_frame = None

    def feed(self, samples) -> None:
        """Deliver one frame as if it came from the device."""
        if self._on_frame is not None:
            self._on_frame(np.asarray(samples, dtype=np.float32))
