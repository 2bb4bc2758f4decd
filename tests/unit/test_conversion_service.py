"""Unit tests for the World Labs provider and the conversion service."""

import json

import httpx
import pytest
import respx

from conceptscape_core.conversion import (
    ConversionJob,
    ConversionService,
    JobStage,
    PollState,
    UploadPayload,
    WorldLabsProvider,
    select_asset_url,
)
from conceptscape_core.conversion.job import InvalidStageTransition
from conceptscape_core.errors import ConversionError, ConversionFailureKind

WORLDLABS_BASE = "https://api.worldlabs.ai"
SIGNED_URL = "https://uploads.test/signed/ma_123"

PREPARE_URL = f"{WORLDLABS_BASE}/marble/v1/media-assets:prepare_upload"
GENERATE_URL = f"{WORLDLABS_BASE}/marble/v1/worlds:generate"
OPERATION_URL = f"{WORLDLABS_BASE}/marble/v1/operations/op_1"
WORLD_URL = f"{WORLDLABS_BASE}/marble/v1/worlds/world_1"

SPZ_URLS = {
    "100k": "https://cdn.test/world_1/100k.spz",
    "500k": "https://cdn.test/world_1/500k.spz",
    "full_res": "https://cdn.test/world_1/full.spz",
}

PENDING = {"done": False, "metadata": {"progress": {"status": "IN_PROGRESS"}}}
DONE = {"done": True, "metadata": {"world_id": "world_1"}}


def world_body(spz_urls):
    return {"world": {"id": "world_1", "assets": {"splats": {"spz_urls": spz_urls}}}}


def mock_upload_and_submit():
    respx.post(PREPARE_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "media_asset": {"id": "ma_123"},
                "upload_info": {
                    "upload_url": SIGNED_URL,
                    "upload_method": "PUT",
                    "required_headers": {"x-goog-content-length-range": "0,10485760"},
                },
            },
        )
    )
    respx.put(SIGNED_URL).mock(return_value=httpx.Response(200))
    respx.post(GENERATE_URL).mock(return_value=httpx.Response(200, json={"operation_id": "op_1"}))


@pytest.fixture
def provider():
    return WorldLabsProvider(api_key="test-wlt-key", base_url=WORLDLABS_BASE)


@pytest.fixture
def service(provider):
    return ConversionService(provider, poll_interval=0, max_attempts=5, max_transport_failures=3)


class TestSelectAssetUrl:
    """Tests for splat resolution priority."""

    def test_full_resolution_preferred(self):
        assert select_asset_url(world_body(SPZ_URLS)) == SPZ_URLS["full_res"]

    def test_falls_back_to_500k(self):
        urls = {"100k": SPZ_URLS["100k"], "500k": SPZ_URLS["500k"]}

        assert select_asset_url(world_body(urls)) == SPZ_URLS["500k"]

    def test_unwrapped_world(self):
        world = {"assets": {"splats": {"spz_urls": {"100k": SPZ_URLS["100k"]}}}}

        assert select_asset_url(world) == SPZ_URLS["100k"]

    def test_no_urls(self):
        with pytest.raises(ConversionError) as exc_info:
            select_asset_url(world_body({}))

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR


class TestConversionJob:
    """Tests for forward-only job stages."""

    def test_forward_transitions(self):
        job = ConversionJob(concept="rome")

        job.advance(JobStage.GENERATING)
        job.advance(JobStage.POLLING)
        job.succeed("https://cdn.test/a.spz")

        assert job.is_terminal
        assert job.result_asset_url == "https://cdn.test/a.spz"
        assert job.job_id.startswith("job_")

    def test_backwards_rejected(self):
        job = ConversionJob()
        job.advance(JobStage.POLLING)

        with pytest.raises(InvalidStageTransition):
            job.advance(JobStage.UPLOADING)

    def test_terminal_is_final(self):
        job = ConversionJob()
        job.fail(ConversionFailureKind.TIMEOUT, "too slow")

        with pytest.raises(InvalidStageTransition):
            job.succeed("https://cdn.test/a.spz")
        with pytest.raises(InvalidStageTransition):
            job.fail(ConversionFailureKind.PROVIDER_ERROR, "again")

        assert job.failure_kind == ConversionFailureKind.TIMEOUT


class TestWorldLabsProvider:
    """Tests for the Marble API client."""

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            WorldLabsProvider(api_key="")

    @pytest.mark.asyncio
    @respx.mock
    async def test_upload_keeps_api_key_off_signed_host(self, provider, png_bytes):
        mock_upload_and_submit()

        handle = await provider.upload(UploadPayload(data=png_bytes, mime_type="image/png"))

        assert handle == "ma_123"
        prepare = respx.calls[0].request
        assert prepare.headers["WLT-Api-Key"] == "test-wlt-key"
        assert json.loads(prepare.content) == {"file_name": "image.png", "kind": "image", "extension": "png"}

        signed = respx.calls[1].request
        assert "WLT-Api-Key" not in signed.headers
        assert signed.headers["Content-Type"] == "image/png"
        assert signed.headers["x-goog-content-length-range"] == "0,10485760"
        assert signed.content == png_bytes
        await provider.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_submit_body(self, provider):
        route = respx.post(GENERATE_URL).mock(return_value=httpx.Response(200, json={"operation_id": "op_1"}))

        operation_id = await provider.submit("ma_123", "ancient rome")

        assert operation_id == "op_1"
        body = json.loads(route.calls.last.request.content)
        assert body["display_name"] == "ancient rome"
        assert body["world_prompt"]["image_prompt"]["media_asset_id"] == "ma_123"
        assert body["world_prompt"]["text_prompt"] == "ancient rome"

    @pytest.mark.asyncio
    @respx.mock
    async def test_poll_states(self, provider):
        respx.get(OPERATION_URL).mock(
            side_effect=[
                httpx.Response(200, json=PENDING),
                httpx.Response(200, json=DONE),
                httpx.Response(200, json={"done": True, "error": {"message": "bad image"}}),
                httpx.Response(200, json={"done": True}),
            ]
        )

        pending = await provider.poll("op_1")
        success = await provider.poll("op_1")
        failed = await provider.poll("op_1")
        missing = await provider.poll("op_1")

        assert pending.state == PollState.PENDING
        assert pending.progress == "IN_PROGRESS"
        assert success.world_id == "world_1"
        assert failed.state == PollState.ERROR
        assert "bad image" in failed.error_detail
        assert missing.state == PollState.ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_upstream_status_is_provider_error(self, provider):
        respx.get(OPERATION_URL).mock(return_value=httpx.Response(503, text="unavailable"))

        with pytest.raises(ConversionError) as exc_info:
            await provider.poll("op_1")

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR
        assert exc_info.value.status_code == 503
        assert exc_info.value.is_transient


class TestConversionService:
    """Tests for ConversionService.convert."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_conversion(self, service, png_bytes):
        mock_upload_and_submit()
        respx.get(OPERATION_URL).mock(
            side_effect=[httpx.Response(200, json=PENDING), httpx.Response(200, json=DONE)]
        )
        respx.get(WORLD_URL).mock(return_value=httpx.Response(200, json=world_body(SPZ_URLS)))
        stages = []

        result = await service.convert(png_bytes, "ancient rome", on_progress=lambda job: stages.append(job.stage))

        assert result.asset_url == SPZ_URLS["full_res"]
        assert result.world_id == "world_1"
        assert result.attempts == 2
        assert result.job_id.startswith("job_")
        assert stages == [JobStage.UPLOADING, JobStage.GENERATING, JobStage.POLLING, JobStage.DONE]

    @pytest.mark.asyncio
    @respx.mock
    async def test_poll_budget_exhausted(self, service, png_bytes):
        mock_upload_and_submit()
        poll = respx.get(OPERATION_URL).mock(return_value=httpx.Response(200, json=PENDING))
        jobs = []

        with pytest.raises(ConversionError) as exc_info:
            await service.convert(png_bytes, "rome", on_progress=jobs.append)

        error = exc_info.value
        assert error.kind == ConversionFailureKind.TIMEOUT
        assert error.stage == "polling"
        assert error.job_id == jobs[-1].job_id
        assert poll.call_count == 5
        assert jobs[-1].attempts_elapsed == 5
        assert jobs[-1].stage == JobStage.FAILED
        assert jobs[-1].failure_kind == ConversionFailureKind.TIMEOUT

    @pytest.mark.asyncio
    @respx.mock
    async def test_transient_poll_failures_tolerated(self, service, png_bytes):
        mock_upload_and_submit()
        respx.get(OPERATION_URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.ConnectError("reset"),
                httpx.Response(200, json=DONE),
            ]
        )
        respx.get(WORLD_URL).mock(return_value=httpx.Response(200, json=world_body(SPZ_URLS)))

        result = await service.convert(png_bytes, "rome")

        assert result.attempts == 3
        assert result.asset_url == SPZ_URLS["full_res"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_consecutive_transport_failures(self, service, png_bytes):
        mock_upload_and_submit()
        poll = respx.get(OPERATION_URL).mock(side_effect=httpx.ConnectError("down"))

        with pytest.raises(ConversionError) as exc_info:
            await service.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.TRANSPORT_ERROR
        assert poll.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_operation_error(self, service, png_bytes):
        mock_upload_and_submit()
        respx.get(OPERATION_URL).mock(
            return_value=httpx.Response(200, json={"done": True, "error": "content policy"})
        )

        with pytest.raises(ConversionError) as exc_info:
            await service.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR
        assert "content policy" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_world_without_splats(self, service, png_bytes):
        mock_upload_and_submit()
        respx.get(OPERATION_URL).mock(return_value=httpx.Response(200, json=DONE))
        respx.get(WORLD_URL).mock(return_value=httpx.Response(200, json=world_body({})))

        with pytest.raises(ConversionError) as exc_info:
            await service.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_prepare_rejected(self, service, png_bytes):
        respx.post(PREPARE_URL).mock(return_value=httpx.Response(401, json={"detail": "bad key"}))

        with pytest.raises(ConversionError) as exc_info:
            await service.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR
        assert exc_info.value.stage == "uploading"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_image_never_reaches_provider(self, service):
        with pytest.raises(ConversionError) as exc_info:
            await service.convert(b"", "rome")

        assert exc_info.value.kind == ConversionFailureKind.INVALID_INPUT
        assert exc_info.value.job_id is not None
        assert respx.calls.call_count == 0

    def test_attempt_budget_must_be_positive(self, provider):
        with pytest.raises(ValueError):
            ConversionService(provider, max_attempts=0)
