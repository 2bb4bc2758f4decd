"""
Conceptscape Voice - Base Types

Foundational types for streaming speech-intent extraction: capture states,
transcript events, the per-capture transcription session, the command
grammar and PCM frame conversion.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ..catalog.registry import normalize_concept
from ..errors import ConceptscapeError


# =============================================================================
# Enums and Constants
# =============================================================================


class CaptureState(str, Enum):
    """Lifecycle of the speech intent extractor."""

    IDLE = "idle"
    CAPTURING = "capturing"
    LOCKED = "locked"


COMMAND_PREFIX = "show me "

_TRAILING_PUNCTUATION = re.compile(r"[.?!]+$")


# =============================================================================
# Events
# =============================================================================


@dataclass
class TranscriptEvent:
    """A transcript update from the streaming channel."""

    text: str
    is_final: bool
    speech_final: bool = False
    confidence: float = 1.0
    timestamp: float = 0.0


@dataclass
class AudioConfig:
    """Format of frames forwarded to the transcription channel."""

    sample_rate: int = 48000
    channels: int = 1
    bits_per_sample: int = 16
    encoding: str = "linear16"

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    def duration_from_bytes(self, num_bytes: int) -> float:
        """Calculate duration in seconds from byte count."""
        return num_bytes / (self.sample_rate * self.bytes_per_sample * self.channels)


# =============================================================================
# Session
# =============================================================================


@dataclass
class TranscriptionSession:
    """
    State of one capture session.

    ``is_locked`` is a one-way latch: once a command is accepted no later
    transcript may change ``final_text``. Sessions are never reused.
    """

    id: str = field(default_factory=lambda: f"ts_{uuid.uuid4().hex[:16]}")
    is_active: bool = True
    is_locked: bool = False
    partial_text: str = ""
    final_text: str = ""
    command: Optional[str] = None
    error: Optional[ConceptscapeError] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def lock(self, final_text: str, command: Optional[str]) -> bool:
        """Latch the final text. Returns False if already locked."""
        if self.is_locked:
            return False
        self.is_locked = True
        self.final_text = final_text
        self.partial_text = final_text
        self.command = command
        return True

    def apply_interim(self, text: str) -> bool:
        if self.is_locked or not self.is_active:
            return False
        self.partial_text = text
        return True

    def apply_final(self, text: str) -> bool:
        if self.is_locked or not self.is_active:
            return False
        self.partial_text = text
        self.final_text = text
        return True

    def deactivate(self) -> None:
        self.is_active = False


# =============================================================================
# Command Grammar
# =============================================================================


def parse_command(text: str) -> Optional[str]:
    """
    Extract the payload of a ``show me <X>`` command.

    >>> parse_command("Show me Ancient Rome.")
    'ancient rome'
    """
    lowered = _TRAILING_PUNCTUATION.sub("", (text or "").strip().lower()).strip()
    lowered = normalize_concept(lowered)
    if not lowered.startswith(COMMAND_PREFIX):
        return None
    payload = lowered[len(COMMAND_PREFIX):].strip()
    return payload or None


# =============================================================================
# PCM Conversion
# =============================================================================


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """
    Convert float32 samples in [-1, 1] to little-endian 16-bit PCM.

    Multi-channel frames (frames x channels) keep only the first channel.
    Negative samples scale by 0x8000 and positive by 0x7FFF.
    """
    data = np.asarray(samples, dtype=np.float32)
    if data.ndim > 1:
        data = data[:, 0]
    clipped = np.clip(data, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype("<i2").tobytes()


# =============================================================================
# Callback Types
# =============================================================================

OnTranscriptCallback = Callable[[TranscriptEvent], None]
OnChannelErrorCallback = Callable[[str], None]
OnChannelCloseCallback = Callable[[], None]
OnFrameCallback = Callable[[np.ndarray], None]
