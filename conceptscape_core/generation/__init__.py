"""Content and image generation backed by Gemini."""

from .content import ContentGenerator, extract_json_block, parse_content
from .gemini import GeminiClient
from .images import ImageGenerator
from .models import (
    Callout,
    CalloutAnchor,
    EducationalContent,
    GeneratedImage,
    KeyFact,
    Source,
    SubtitleLine,
)

__all__ = [
    "ContentGenerator",
    "extract_json_block",
    "parse_content",
    "GeminiClient",
    "ImageGenerator",
    "Callout",
    "CalloutAnchor",
    "EducationalContent",
    "GeneratedImage",
    "KeyFact",
    "Source",
    "SubtitleLine",
]
