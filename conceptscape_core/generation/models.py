"""
Generation Models

Pydantic models for generated educational content. Upstream JSON uses
camelCase keys; models accept either the alias or the field name and
tolerate nulls and unknown keys.
"""

import base64
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CalloutAnchor(str, Enum):
    """Screen region a callout is pinned to."""

    CENTER = "center"
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"


class _Lenient(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class KeyFact(_Lenient):
    text: str
    source: str = ""


class Callout(_Lenient):
    text: str
    anchor: CalloutAnchor = CalloutAnchor.CENTER

    @field_validator("anchor", mode="before")
    @classmethod
    def _known_anchor(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() in CalloutAnchor._value2member_map_:
            return v.lower()
        return CalloutAnchor.CENTER


class SubtitleLine(_Lenient):
    timestamp_seconds: float = Field(alias="t", ge=0)
    text: str


class Source(_Lenient):
    label: str
    url: str = ""


class EducationalContent(_Lenient):
    """Structured lesson material for one concept."""

    concept: str
    scene_id: str = Field(default="default", alias="sceneId")
    learning_objectives: List[str] = Field(default_factory=list, alias="learningObjectives")
    key_facts: List[KeyFact] = Field(default_factory=list, alias="keyFacts")
    callouts: List[Callout] = Field(default_factory=list)
    narration_script: str = Field(default="", alias="narrationScript")
    subtitle_lines: List[SubtitleLine] = Field(default_factory=list, alias="subtitleLines")
    sources: List[Source] = Field(default_factory=list)

    @field_validator(
        "learning_objectives",
        "key_facts",
        "callouts",
        "subtitle_lines",
        "sources",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("narration_script", "scene_id", mode="before")
    @classmethod
    def _none_as_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def subtitle_timeline(self) -> List[SubtitleLine]:
        """Subtitle lines ordered by timestamp."""
        return sorted(self.subtitle_lines, key=lambda line: line.timestamp_seconds)

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class GeneratedImage(BaseModel):
    """A still image produced for a concept."""

    data: bytes
    mime_type: str = "image/png"
    model: Optional[str] = None
    source_url: Optional[str] = None

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"
