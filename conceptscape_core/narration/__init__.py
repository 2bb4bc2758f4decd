"""Narration audio and subtitle timing."""

from .elevenlabs import ElevenLabsNarrator, VoiceSettings
from .timeline import estimate_subtitle_timeline, split_sentences

__all__ = [
    "ElevenLabsNarrator",
    "VoiceSettings",
    "estimate_subtitle_timeline",
    "split_sentences",
]
