"""Request and response models for the HTTP service."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    conversion_configured: bool
    active_jobs: int


class ConvertResponse(_CamelModel):
    asset_url: str = Field(alias="assetUrl")
    job_id: str = Field(alias="jobId")
    world_id: Optional[str] = Field(default=None, alias="worldId")
    attempts: int = 0


class ErrorResponse(_CamelModel):
    error: str
    message: str
    stage: Optional[str] = None
    job_id: Optional[str] = Field(default=None, alias="jobId")


class OrchestrateRequest(_CamelModel):
    concept: str = Field(min_length=1, max_length=500)
    # Runs sharing a session supersede each other; omitted means isolated
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=128)


class PipelineStartResponse(_CamelModel):
    job_id: str = Field(alias="jobId")
    status: str


class PipelineStatus(_CamelModel):
    job_id: str = Field(alias="jobId")
    concept: str
    status: str
    stage: Optional[str] = None
    progress: int = 0
    message: str = ""
    start_time: float = Field(alias="startTime")
    end_time: Optional[float] = Field(default=None, alias="endTime")
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
