"""Speech intent extraction: microphone capture to a locked ``show me`` command."""

from .base import (
    AudioConfig,
    CaptureState,
    TranscriptEvent,
    TranscriptionSession,
    float_to_pcm16,
    parse_command,
)
from .capture import AudioCapture, MockAudioCapture, SoundDeviceCapture
from .channel import MockTranscriptionChannel, TranscriptionChannel
from .extractor import SpeechIntentExtractor

__all__ = [
    "AudioConfig",
    "CaptureState",
    "TranscriptEvent",
    "TranscriptionSession",
    "float_to_pcm16",
    "parse_command",
    "AudioCapture",
    "MockAudioCapture",
    "SoundDeviceCapture",
    "MockTranscriptionChannel",
    "TranscriptionChannel",
    "SpeechIntentExtractor",
]
