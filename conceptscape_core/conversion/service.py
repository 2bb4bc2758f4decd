"""
Conversion Service

Drives one conversion job: normalize -> upload -> submit -> poll -> resolve.
Polling is strictly sequential with a fixed interval and a hard attempt
budget, so a job that never finishes fails with ``timeout`` instead of
hanging.
"""

import asyncio
from typing import Callable, Optional

import httpx
import structlog

from ..config import Settings, get_settings
from ..errors import ConversionError, ConversionFailureKind
from .job import ConversionJob, ConversionResult, JobStage, PollState
from .media import ImageSource, normalize_image_source
from .provider import WorldLabsProvider, select_asset_url

logger = structlog.get_logger(__name__)

JobCallback = Callable[[ConversionJob], None]


class ConversionService:
    """
    Server-side conversion driver.

    Transient poll failures (transport errors, upstream 5xx/429) are
    tolerated and count against the attempt budget; ``max_transport_failures``
    of them in a row end the job with the failure's own kind.
    """

    def __init__(
        self,
        provider: WorldLabsProvider,
        poll_interval: float = 5.0,
        max_attempts: int = 120,
        max_transport_failures: int = 5,
        max_upload_bytes: Optional[int] = None,
        fetch_client: Optional[httpx.AsyncClient] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_transport_failures < 1:
            raise ValueError("max_transport_failures must be at least 1")

        self.provider = provider
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.max_transport_failures = max_transport_failures
        self.max_upload_bytes = max_upload_bytes
        self.fetch_client = fetch_client

    async def convert(
        self,
        image: ImageSource,
        concept: str,
        on_progress: Optional[JobCallback] = None,
    ) -> ConversionResult:
        """
        Convert an image into a 3D asset URL.

        Raises:
            ConversionError: with the job id and the stage that failed
        """
        job = ConversionJob(concept=concept)
        log = logger.bind(job_id=job.job_id, concept=concept)

        def notify() -> None:
            if on_progress:
                on_progress(job)

        notify()
        try:
            payload = await normalize_image_source(
                image,
                client=self.fetch_client,
                max_bytes=self.max_upload_bytes,
            )
            job.asset_handle = await self.provider.upload(payload)

            job.advance(JobStage.GENERATING)
            notify()
            job.operation_id = await self.provider.submit(job.asset_handle, concept)
            log.info("World generation started", operation_id=job.operation_id)

            job.advance(JobStage.POLLING)
            notify()
            job.world_id = await self._poll_until_done(job, log)

            world = await self.provider.fetch_world(job.world_id)
            asset_url = select_asset_url(world)

        except ConversionError as e:
            e.job_id = job.job_id
            e.stage = e.stage or job.stage.value
            job.fail(e.kind, e.message)
            notify()
            log.error(
                "Conversion failed",
                kind=e.kind.value,
                stage=e.stage,
                attempts=job.attempts_elapsed,
                error=e.message,
            )
            raise

        job.succeed(asset_url)
        notify()
        log.info("Conversion complete", world_id=job.world_id, attempts=job.attempts_elapsed)
        return ConversionResult(
            asset_url=asset_url,
            job_id=job.job_id,
            world_id=job.world_id,
            attempts=job.attempts_elapsed,
        )

    async def _poll_until_done(self, job: ConversionJob, log) -> str:
        consecutive_failures = 0

        while job.attempts_elapsed < self.max_attempts:
            await asyncio.sleep(self.poll_interval)
            job.attempts_elapsed += 1

            try:
                status = await self.provider.poll(job.operation_id)
            except ConversionError as e:
                if not e.is_transient:
                    raise
                consecutive_failures += 1
                log.warning(
                    "Transient poll failure",
                    attempt=job.attempts_elapsed,
                    consecutive=consecutive_failures,
                    error=e.message,
                )
                if consecutive_failures >= self.max_transport_failures:
                    raise ConversionError(
                        f"Polling failed {consecutive_failures} times in a row: {e.message}",
                        kind=e.kind,
                        stage="polling",
                        status_code=e.status_code,
                    ) from e
                continue

            consecutive_failures = 0
            if status.state == PollState.SUCCESS:
                return status.world_id
            if status.state == PollState.ERROR:
                raise ConversionError(
                    status.error_detail or "Operation failed",
                    kind=ConversionFailureKind.PROVIDER_ERROR,
                    stage="polling",
                )

            log.debug(
                "Operation pending",
                attempt=job.attempts_elapsed,
                max_attempts=self.max_attempts,
                progress=status.progress,
            )

        raise ConversionError(
            f"Operation timeout after {job.attempts_elapsed} poll attempts",
            kind=ConversionFailureKind.TIMEOUT,
            stage="polling",
        )


def create_conversion_service(settings: Optional[Settings] = None) -> ConversionService:
    settings = settings or get_settings()
    provider = WorldLabsProvider(
        api_key=settings.worldlabs_api_key,
        base_url=settings.worldlabs_base_url,
        timeout=settings.conversion_request_timeout,
    )
    return ConversionService(
        provider,
        poll_interval=settings.conversion_poll_interval,
        max_attempts=settings.conversion_max_attempts,
        max_transport_failures=settings.conversion_max_transport_failures,
        max_upload_bytes=settings.max_upload_bytes,
    )
