"""
Conversion Job Types

State carried by one image-to-world conversion, from upload through the
bounded poll loop to the resolved asset URL.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import ConversionFailureKind


class JobStage(str, Enum):
    """Forward-only conversion stages. DONE and FAILED are terminal."""

    UPLOADING = "uploading"
    GENERATING = "generating"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


_STAGE_ORDER = {
    JobStage.UPLOADING: 0,
    JobStage.GENERATING: 1,
    JobStage.POLLING: 2,
    JobStage.DONE: 3,
    JobStage.FAILED: 3,
}


class InvalidStageTransition(Exception):
    """A conversion job was moved backwards or out of a terminal stage."""

    def __init__(self, from_stage: JobStage, to_stage: JobStage):
        super().__init__(f"Invalid job transition: {from_stage.value} -> {to_stage.value}")
        self.from_stage = from_stage
        self.to_stage = to_stage


def generate_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


@dataclass
class ConversionJob:
    """One conversion request. Discarded once it reaches a terminal stage."""

    job_id: str = field(default_factory=generate_job_id)
    concept: str = ""
    stage: JobStage = JobStage.UPLOADING
    attempts_elapsed: int = 0
    result_asset_url: Optional[str] = None
    error_detail: Optional[str] = None
    failure_kind: Optional[ConversionFailureKind] = None
    asset_handle: Optional[str] = None
    operation_id: Optional[str] = None
    world_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in (JobStage.DONE, JobStage.FAILED)

    def advance(self, stage: JobStage) -> None:
        if self.is_terminal or _STAGE_ORDER[stage] < _STAGE_ORDER[self.stage]:
            raise InvalidStageTransition(self.stage, stage)
        self.stage = stage

    def succeed(self, asset_url: str) -> None:
        self.advance(JobStage.DONE)
        self.result_asset_url = asset_url
        self.completed_at = datetime.utcnow()

    def fail(self, kind: ConversionFailureKind, detail: str) -> None:
        if self.is_terminal:
            raise InvalidStageTransition(self.stage, JobStage.FAILED)
        self.stage = JobStage.FAILED
        self.failure_kind = ConversionFailureKind(kind)
        self.error_detail = detail
        self.completed_at = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "stage": self.stage.value,
            "attemptsElapsed": self.attempts_elapsed,
            "resultAssetUrl": self.result_asset_url,
            "errorDetail": self.error_detail,
        }


class PollState(str, Enum):
    PENDING = "pending"
    SUCCESS = "done-success"
    ERROR = "done-error"


@dataclass(frozen=True)
class PollStatus:
    """One poll result. Transport failures are raised, not returned."""

    state: PollState
    world_id: Optional[str] = None
    error_detail: Optional[str] = None
    progress: Optional[str] = None

    @classmethod
    def pending(cls, progress: Optional[str] = None) -> "PollStatus":
        return cls(state=PollState.PENDING, progress=progress)

    @classmethod
    def success(cls, world_id: str) -> "PollStatus":
        return cls(state=PollState.SUCCESS, world_id=world_id)

    @classmethod
    def error(cls, detail: str) -> "PollStatus":
        return cls(state=PollState.ERROR, error_detail=detail)

    @property
    def is_done(self) -> bool:
        return self.state != PollState.PENDING


@dataclass
class UploadPayload:
    """Upload-ready image bytes."""

    data: bytes
    mime_type: str = "image/png"
    filename: str = "image.png"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1] if "." in self.filename else "png"


@dataclass
class ConversionResult:
    """A resolved, ready-to-load 3D asset."""

    asset_url: str
    job_id: str
    world_id: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetUrl": self.asset_url,
            "jobId": self.job_id,
            "worldId": self.world_id,
            "attempts": self.attempts,
        }
