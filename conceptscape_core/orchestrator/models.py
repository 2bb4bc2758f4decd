"""Orchestration result and progress types."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..generation.models import EducationalContent, SubtitleLine


class AssetSource(str, Enum):
    """Where the scene's 3D asset came from."""

    CACHE = "cache"
    GENERATED = "generated"
    FALLBACK = "fallback"


class PipelineStage(str, Enum):
    ORCHESTRATING = "orchestrating"
    CHECKING_CACHE = "checking_cache"
    GENERATING_IMAGE = "generating_image"
    CREATING_WORLD = "creating_world"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """A progress update for one orchestration run."""

    run_id: str
    stage: PipelineStage
    progress: int
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "stage": self.stage.value,
            "progress": self.progress,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


@dataclass
class OrchestrationResult:
    """
    Everything the presentation layer needs for one scene.

    Produced once per run and not persisted.
    """

    concept: str
    educational_content: EducationalContent
    asset_url: str
    source_of_asset: AssetSource
    run_id: str
    warnings: List[str] = field(default_factory=list)
    narration_audio: Optional[bytes] = None

    @property
    def narration_script(self) -> str:
        return self.educational_content.narration_script

    @property
    def subtitle_timeline(self) -> List[SubtitleLine]:
        return self.educational_content.subtitle_timeline

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept": self.concept,
            "educationalContent": self.educational_content.to_api(),
            "narrationScript": self.narration_script,
            "subtitleTimeline": [
                {"timestampSeconds": line.timestamp_seconds, "text": line.text}
                for line in self.subtitle_timeline
            ],
            "assetUrl": self.asset_url,
            "sourceOfAsset": self.source_of_asset.value,
            "runId": self.run_id,
            "warnings": list(self.warnings),
            "hasNarrationAudio": self.narration_audio is not None,
        }
