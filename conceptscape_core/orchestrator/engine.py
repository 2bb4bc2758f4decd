"""
Generation Orchestrator

Turns a concept into an ``OrchestrationResult``, fastest path first:

    1. educational content
    2. catalog cache check (locally hosted, reachable, plausibly sized)
    3. concept image
    4. image-to-world conversion
    5. assemble

A failure in 1, 3 or 4 degrades to a catalog asset (even a weak match,
but a local one only if it passes the cache check) and then the demo
asset. If step 1 failed, it is retried once after the fallback asset is
chosen; only a failed retry ends the run in error.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..catalog.registry import CatalogMatch, SceneCatalog, normalize_concept
from ..catalog.verifier import AssetVerifier, CacheCheck
from ..errors import (
    ConceptscapeError,
    ContentGenerationError,
    ConversionError,
    ConversionFailureKind,
    ImageGenerationError,
    NarrationError,
    NoAssetAvailable,
    RunCancelled,
)
from ..conversion.gateway import ConversionGateway
from ..conversion.job import ConversionJob, ConversionResult, JobStage
from ..generation.content import ContentGenerator
from ..generation.images import ImageGenerator
from ..generation.models import EducationalContent, GeneratedImage
from ..narration.elevenlabs import ElevenLabsNarrator
from .models import AssetSource, OrchestrationResult, PipelineStage, ProgressEvent
from .run import RunHandle

logger = structlog.get_logger(__name__)

DEMO_ASSET_URL = "https://sparkjs.dev/assets/splats/butterfly.spz"
DEFAULT_SESSION = "default"

ProgressCallback = Callable[[ProgressEvent], None]

_JOB_PROGRESS = {
    JobStage.UPLOADING: 55,
    JobStage.GENERATING: 65,
    JobStage.POLLING: 75,
    JobStage.DONE: 95,
    JobStage.FAILED: 95,
}


class GenerationOrchestrator:
    """
    Coordinates catalog, generators and the conversion gateway.

    Runs are grouped by ``session_id``. Within a session a new run for a
    different concept cancels the run in flight; runs in other sessions
    are untouched. A cancelled run never publishes to ``latest_result``.
    """

    def __init__(
        self,
        catalog: SceneCatalog,
        verifier: AssetVerifier,
        content_generator: ContentGenerator,
        image_generator: ImageGenerator,
        gateway: ConversionGateway,
        demo_asset_url: Optional[str] = DEMO_ASSET_URL,
        narrator: Optional[ElevenLabsNarrator] = None,
        conversion_retries: int = 1,
    ):
        self.catalog = catalog
        self.verifier = verifier
        self.content_generator = content_generator
        self.image_generator = image_generator
        self.gateway = gateway
        self.demo_asset_url = demo_asset_url
        self.narrator = narrator
        self.conversion_retries = conversion_retries

        self.latest_result: Optional[OrchestrationResult] = None
        self._runs: Dict[str, RunHandle] = {}

    @property
    def current_run(self) -> Optional[RunHandle]:
        return self._runs.get(DEFAULT_SESSION)

    def run_for(self, session_id: str) -> Optional[RunHandle]:
        return self._runs.get(session_id)

    def cancel_current(self, session_id: str = DEFAULT_SESSION) -> None:
        handle = self._runs.get(session_id)
        if handle is not None:
            handle.cancel("cancelled")

    async def orchestrate(
        self,
        concept: str,
        signal: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        session_id: str = DEFAULT_SESSION,
    ) -> OrchestrationResult:
        """
        Run the pipeline for ``concept``.

        Only an earlier run with the same ``session_id`` can be superseded.

        Raises:
            ValueError: empty concept
            RunCancelled: superseded by a newer run in the session or ``signal`` was set
            ContentGenerationError: content failed on both attempts
            NoAssetAvailable: no catalog asset and no demo asset
        """
        normalized = normalize_concept(concept)
        if not normalized:
            raise ValueError("Concept is required")

        previous = self._runs.get(session_id)
        if previous is not None and not previous.cancelled and previous.concept != normalized:
            previous.cancel("superseded")
            logger.info(
                "Superseded previous run",
                run_id=previous.run_id,
                concept=previous.concept,
                session_id=session_id,
            )

        handle = RunHandle(normalized, signal=signal)
        self._runs[session_id] = handle
        log = logger.bind(run_id=handle.run_id, concept=normalized, session_id=session_id)

        def emit(stage: PipelineStage, progress: int, message: str, **details) -> None:
            if on_progress is not None and not handle.cancelled:
                on_progress(ProgressEvent(handle.run_id, stage, progress, message, details))

        log.info("Orchestration started")
        try:
            result = await self._run(handle, normalized, emit, log)
            handle.check()
        except RunCancelled:
            log.info("Orchestration cancelled", reason=handle.reason)
            raise
        except ConceptscapeError as e:
            emit(PipelineStage.ERROR, 0, e.message, error=e.code)
            log.error("Orchestration failed", error=e.message, code=e.code)
            raise
        finally:
            if self._runs.get(session_id) is handle:
                del self._runs[session_id]

        self.latest_result = result
        emit(PipelineStage.COMPLETE, 100, "Scene ready", asset_url=result.asset_url)
        log.info(
            "Orchestration complete",
            source=result.source_of_asset.value,
            asset_url=result.asset_url,
            warnings=len(result.warnings),
        )
        return result

    async def _run(self, handle: RunHandle, concept: str, emit, log) -> OrchestrationResult:
        warnings: List[str] = []
        match = self.catalog.lookup(concept)

        emit(PipelineStage.ORCHESTRATING, 10, "Generating educational content...")
        content: Optional[EducationalContent] = None
        try:
            content = await self.content_generator.generate(concept, scene_id=match.entry.id)
        except ContentGenerationError as e:
            log.warning("Content generation failed, falling back", error=e.message)
            warnings.append(f"{e.code}: {e.message}")
        handle.check()

        if content is None:
            asset_url, source = await self._fallback_asset(handle, match, log)
            emit(PipelineStage.ORCHESTRATING, 60, "Retrying educational content...")
            try:
                content = await self.content_generator.generate(concept, scene_id=match.entry.id)
            except ContentGenerationError as e:
                log.error("Content generation retry failed", error=e.message)
                raise ContentGenerationError(
                    f"Content generation failed after retry: {e.message}",
                    details={"concept": concept},
                ) from e
            handle.check()
        else:
            asset_url, source = await self._resolve_asset(handle, concept, match, emit, warnings, log)

        narration_audio = await self._narrate(handle, content, warnings, log)

        return OrchestrationResult(
            concept=concept,
            educational_content=content,
            asset_url=asset_url,
            source_of_asset=source,
            run_id=handle.run_id,
            warnings=warnings,
            narration_audio=narration_audio,
        )

    # -------------------------------------------------------------------------
    # Asset resolution
    # -------------------------------------------------------------------------

    async def _resolve_asset(
        self,
        handle: RunHandle,
        concept: str,
        match: CatalogMatch,
        emit,
        warnings: List[str],
        log,
    ) -> Tuple[str, AssetSource]:
        check: Optional[CacheCheck] = None
        # A default-entry match says nothing about this concept
        if not match.is_weak:
            emit(PipelineStage.CHECKING_CACHE, 20, "Checking scene library...")
            check = await self.verifier.verify(match.entry)
            handle.check()
            if check.valid:
                log.info("Using cached scene", entry_id=match.entry.id, asset_url=check.asset_url)
                return check.asset_url, AssetSource.CACHE

        try:
            emit(PipelineStage.GENERATING_IMAGE, 30, "Generating concept image...")
            image = await self.image_generator.generate(concept)
            handle.check()

            emit(PipelineStage.CREATING_WORLD, 50, "Creating 3D world...")
            conversion = await self._convert(handle, image, concept, emit, log)
        except (ImageGenerationError, ConversionError) as e:
            log.warning("Generation path failed, falling back", error=e.message, code=e.code)
            warnings.append(f"{e.code}: {e.message}")
            return await self._fallback_asset(handle, match, log, check)

        return conversion.asset_url, AssetSource.GENERATED

    async def _convert(
        self,
        handle: RunHandle,
        image: GeneratedImage,
        concept: str,
        emit,
        log,
    ) -> ConversionResult:
        def on_job(job: ConversionJob) -> None:
            emit(
                PipelineStage.CREATING_WORLD,
                _JOB_PROGRESS[job.stage],
                f"World generation: {job.stage.value}",
                job_id=job.job_id,
                attempts=job.attempts_elapsed,
            )

        attempt = 0
        while True:
            try:
                result = await self.gateway.convert(image.data_uri, concept, on_progress=on_job)
            except ConversionError as e:
                retryable = e.kind == ConversionFailureKind.TRANSPORT_ERROR
                if not retryable or attempt >= self.conversion_retries:
                    raise
                attempt += 1
                handle.check()
                log.warning("Retrying conversion with the same image", attempt=attempt, error=e.message)
                continue
            handle.check()
            return result

    async def _fallback_asset(
        self,
        handle: RunHandle,
        match: CatalogMatch,
        log,
        check: Optional[CacheCheck] = None,
    ) -> Tuple[str, AssetSource]:
        """
        Catalog asset for a degraded run, else the demo asset.

        Remote references are used as they are. A local reference must pass
        the cache check; ``check`` is the result from this run if it
        already checked the entry.
        """
        entry = match.entry
        if entry.primary_asset_ref:
            if not self.catalog.is_local(entry):
                log.info("Using catalog fallback asset", entry_id=entry.id, weak=match.is_weak)
                return entry.primary_asset_ref, AssetSource.FALLBACK

            if check is None:
                check = await self.verifier.verify(entry)
                handle.check()
            if check.valid:
                log.info("Using catalog fallback asset", entry_id=entry.id, weak=match.is_weak)
                return check.asset_url, AssetSource.FALLBACK
            log.info("Catalog fallback asset unavailable", entry_id=entry.id, reason=check.reason)

        if self.demo_asset_url:
            log.info("Using demo fallback asset")
            return self.demo_asset_url, AssetSource.FALLBACK
        raise NoAssetAvailable("No catalog asset or demo asset available")

    # -------------------------------------------------------------------------
    # Narration
    # -------------------------------------------------------------------------

    async def _narrate(
        self,
        handle: RunHandle,
        content: EducationalContent,
        warnings: List[str],
        log,
    ) -> Optional[bytes]:
        if self.narrator is None:
            return None
        try:
            audio = await self.narrator.synthesize(content.narration_script)
        except NarrationError as e:
            log.warning("Narration failed", error=e.message)
            warnings.append(f"{e.code}: {e.message}")
            audio = None
        handle.check()
        return audio or None

    async def close(self) -> None:
        await self.verifier.close()
        await self.content_generator.close()
        await self.image_generator.close()
        await self.gateway.close()
        if self.narrator is not None:
            await self.narrator.close()
