"""Subtitle timing derived from a narration script."""

import re
from typing import List

from ..generation.models import SubtitleLine

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def split_sentences(script: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_END.split(script or "") if s.strip()]


def estimate_subtitle_timeline(
    script: str,
    words_per_second: float = 2.5,
) -> List[SubtitleLine]:
    """
    One subtitle line per sentence, timed by cumulative word count.

    >>> [(l.timestamp_seconds, l.text) for l in estimate_subtitle_timeline("Hi there. Bye.", 2.0)]
    [(0.0, 'Hi there.'), (1.0, 'Bye.')]
    """
    if words_per_second <= 0:
        raise ValueError("words_per_second must be positive")

    lines: List[SubtitleLine] = []
    elapsed_words = 0
    for sentence in split_sentences(script):
        lines.append(
            SubtitleLine(timestamp_seconds=round(elapsed_words / words_per_second, 2), text=sentence)
        )
        elapsed_words += len(sentence.split())
    return lines
