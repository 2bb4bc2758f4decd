"""
Conceptscape HTTP Service

Hosts the conversion proxy and the orchestration endpoints:

    GET  /health
    POST /api/convert                    multipart image | image_url, concept
    POST /api/orchestrate                {"concept": ...}
    POST /api/pipeline/start             {"concept": ...} -> background run
    GET  /api/pipeline/{job_id}/status
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional, Set

import structlog
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, get_settings
from ..conversion.gateway import InProcessConversionGateway
from ..conversion.job import generate_job_id
from ..conversion.service import ConversionService, create_conversion_service
from ..errors import (
    ConceptscapeError,
    ContentGenerationError,
    ConversionError,
    ConversionFailureKind,
    NoAssetAvailable,
    RunCancelled,
)
from ..orchestrator.engine import GenerationOrchestrator
from ..orchestrator.factory import create_orchestrator
from ..orchestrator.models import PipelineStage, ProgressEvent
from .schemas import (
    ConvertResponse,
    HealthResponse,
    OrchestrateRequest,
    PipelineStartResponse,
    PipelineStatus,
)

logger = structlog.get_logger(__name__)

CONVERSION_STATUS = {
    ConversionFailureKind.INVALID_INPUT: 400,
    ConversionFailureKind.PROVIDER_ERROR: 502,
    ConversionFailureKind.TRANSPORT_ERROR: 502,
    ConversionFailureKind.TIMEOUT: 504,
}


# =============================================================================
# Exception Handlers
# =============================================================================


async def conversion_error_handler(request: Request, exc: ConversionError):
    return JSONResponse(
        status_code=CONVERSION_STATUS.get(exc.kind, 502),
        content={
            "error": exc.kind.value,
            "message": exc.message,
            "stage": exc.stage,
            "jobId": exc.job_id,
        },
    )


async def pipeline_error_handler(request: Request, exc: ConceptscapeError):
    if isinstance(exc, RunCancelled):
        status_code = 409
    elif isinstance(exc, (ContentGenerationError, NoAssetAvailable)):
        status_code = 502
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# =============================================================================
# Pipeline Jobs
# =============================================================================


class PipelineJobs:
    """
    In-memory status of background pipeline runs.

    Finished jobs stay queryable for ``ttl`` seconds. Past ``max_jobs``
    the oldest finished jobs are dropped first; running jobs are never
    dropped.
    """

    FINISHED = ("complete", "error", "cancelled")

    def __init__(self, ttl: float = 3600.0, max_jobs: int = 1000) -> None:
        self.ttl = ttl
        self.max_jobs = max_jobs
        self.jobs: Dict[str, PipelineStatus] = {}
        self.tasks: Set[asyncio.Task] = set()

    def prune(self, now: Optional[float] = None) -> int:
        """Drop expired finished jobs, then the oldest finished ones over the cap."""
        now = time.time() if now is None else now
        finished = sorted(
            (job for job in self.jobs.values() if job.status in self.FINISHED),
            key=lambda job: job.end_time or job.start_time,
        )
        overflow = len(self.jobs) - self.max_jobs + 1
        removed = 0
        for job in finished:
            expired = now - (job.end_time or job.start_time) > self.ttl
            if not expired and removed >= overflow:
                break
            del self.jobs[job.job_id]
            removed += 1
        if removed:
            logger.debug("Pruned pipeline jobs", removed=removed, remaining=len(self.jobs))
        return removed

    def create(self, concept: str) -> PipelineStatus:
        self.prune()
        job = PipelineStatus(
            job_id=generate_job_id(),
            concept=concept,
            status="started",
            start_time=time.time(),
        )
        self.jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Optional[PipelineStatus]:
        return self.jobs.get(job_id)

    @property
    def active(self) -> int:
        return sum(1 for task in self.tasks if not task.done())

    async def run(
        self,
        job: PipelineStatus,
        orchestrator: GenerationOrchestrator,
        session_id: Optional[str] = None,
    ) -> None:
        def on_progress(event: ProgressEvent) -> None:
            job.stage = event.stage.value
            job.progress = event.progress
            job.message = event.message
            if event.stage not in (PipelineStage.COMPLETE, PipelineStage.ERROR):
                job.status = "running"

        log = logger.bind(job_id=job.job_id, concept=job.concept)
        try:
            result = await orchestrator.orchestrate(
                job.concept,
                on_progress=on_progress,
                session_id=session_id or job.job_id,
            )
        except RunCancelled as e:
            job.status = "cancelled"
            job.message = e.message
            log.info("Pipeline job cancelled")
        except ConceptscapeError as e:
            job.status = "error"
            job.stage = PipelineStage.ERROR.value
            job.message = e.message
            job.error = e.to_dict()
            log.error("Pipeline job failed", error=e.message)
        else:
            job.status = "complete"
            job.stage = PipelineStage.COMPLETE.value
            job.progress = 100
            job.result = result.to_dict()
            log.info("Pipeline job complete", asset_url=result.asset_url)
        finally:
            job.end_time = time.time()

    def start(
        self,
        job: PipelineStatus,
        orchestrator: GenerationOrchestrator,
        session_id: Optional[str] = None,
    ) -> None:
        task = asyncio.create_task(self.run(job, orchestrator, session_id))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def shutdown(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks.clear()


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[GenerationOrchestrator] = None,
    conversion_service: Optional[ConversionService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without a World Labs key and no injected service, ``/api/convert``
    answers 503 and orchestration converts through the remote proxy.
    """
    settings = settings or get_settings()

    if conversion_service is None and settings.worldlabs_api_key:
        conversion_service = create_conversion_service(settings)

    if orchestrator is None:
        gateway = InProcessConversionGateway(conversion_service) if conversion_service else None
        orchestrator = create_orchestrator(settings, gateway=gateway)

    jobs = PipelineJobs(ttl=settings.pipeline_job_ttl, max_jobs=settings.pipeline_max_jobs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting Conceptscape service",
            port=settings.port,
            conversion_configured=conversion_service is not None,
        )
        yield
        logger.info("Shutting down Conceptscape service")
        await jobs.shutdown()
        await orchestrator.close()
        if conversion_service is not None:
            await conversion_service.provider.close()

    app = FastAPI(
        title="Conceptscape",
        description="Concept-to-3D-scene generation service",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.conversion_service = conversion_service
    app.state.jobs = jobs

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ConversionError, conversion_error_handler)
    app.add_exception_handler(ConceptscapeError, pipeline_error_handler)

    # ==========================================================================
    # Routes
    # ==========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=__version__,
            conversion_configured=conversion_service is not None,
            active_jobs=jobs.active,
        )

    @app.post("/api/convert", response_model=ConvertResponse)
    async def convert(
        image: Optional[UploadFile] = File(None),
        image_url: Optional[str] = Form(None),
        concept: str = Form(""),
    ):
        if conversion_service is None:
            return JSONResponse(
                status_code=503,
                content={
                    "error": ConversionFailureKind.PROVIDER_ERROR.value,
                    "message": "Conversion provider not configured",
                    "stage": None,
                    "jobId": None,
                },
            )

        if image is not None:
            data = await image.read(settings.max_upload_bytes + 1)
            if len(data) > settings.max_upload_bytes:
                raise ConversionError(
                    "File upload error: file too large",
                    kind=ConversionFailureKind.INVALID_INPUT,
                    stage="uploading",
                )
            source = data
        elif image_url:
            source = image_url
        else:
            raise ConversionError(
                "No image file or URL provided",
                kind=ConversionFailureKind.INVALID_INPUT,
                stage="uploading",
            )

        result = await conversion_service.convert(source, concept or "A 3D environment")
        return ConvertResponse(
            asset_url=result.asset_url,
            job_id=result.job_id,
            world_id=result.world_id,
            attempts=result.attempts,
        )

    @app.post("/api/orchestrate")
    async def orchestrate(request: OrchestrateRequest):
        # Without a session each request runs on its own and supersedes nothing
        session_id = request.session_id or f"request_{uuid.uuid4().hex[:16]}"
        result = await orchestrator.orchestrate(request.concept, session_id=session_id)
        return result.to_dict()

    @app.post("/api/pipeline/start", response_model=PipelineStartResponse)
    async def start_pipeline(request: OrchestrateRequest):
        job = jobs.create(request.concept)
        jobs.start(job, orchestrator, session_id=request.session_id)
        logger.info("Pipeline job started", job_id=job.job_id, concept=request.concept)
        return PipelineStartResponse(job_id=job.job_id, status=job.status)

    @app.get("/api/pipeline/{job_id}/status", response_model=PipelineStatus)
    async def pipeline_status(job_id: str):
        job = jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    return app
