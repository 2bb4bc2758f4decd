"""Concept-to-scene orchestration."""

from .engine import DEFAULT_SESSION, DEMO_ASSET_URL, GenerationOrchestrator
from .factory import create_gateway, create_orchestrator
from .models import AssetSource, OrchestrationResult, PipelineStage, ProgressEvent
from .run import RunHandle

__all__ = [
    "DEFAULT_SESSION",
    "DEMO_ASSET_URL",
    "GenerationOrchestrator",
    "create_gateway",
    "create_orchestrator",
    "AssetSource",
    "OrchestrationResult",
    "PipelineStage",
    "ProgressEvent",
    "RunHandle",
]
