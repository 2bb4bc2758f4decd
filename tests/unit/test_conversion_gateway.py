"""Unit tests for the conversion gateways."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from conceptscape_core.conversion import (
    AssetConversionGateway,
    ConversionResult,
    InProcessConversionGateway,
)
from conceptscape_core.errors import ConversionError, ConversionFailureKind

PROXY_URL = "http://proxy.test/api/convert"


@pytest.fixture
def gateway():
    return AssetConversionGateway(proxy_url=PROXY_URL, timeout=5)


class TestAssetConversionGateway:
    """Tests for the proxy-backed gateway."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_success(self, gateway, png_bytes):
        route = respx.post(PROXY_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "assetUrl": "https://cdn.test/world.spz",
                    "jobId": "job_abc",
                    "worldId": "world_1",
                    "attempts": 4,
                },
            )
        )

        result = await gateway.convert(png_bytes, "ancient rome")

        assert result.asset_url == "https://cdn.test/world.spz"
        assert result.job_id == "job_abc"
        assert result.attempts == 4
        body = route.calls.last.request.content
        assert b'name="concept"' in body
        assert b"ancient rome" in body
        assert b'name="image"; filename="image.png"' in body
        await gateway.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_forwarded_url_is_not_downloaded(self, png_bytes):
        gateway = AssetConversionGateway(proxy_url=PROXY_URL, forward_urls=True)
        route = respx.post(PROXY_URL).mock(
            return_value=httpx.Response(200, json={"assetUrl": "https://cdn.test/w.spz", "jobId": "job_1"})
        )

        await gateway.convert("https://images.test/rome.png", "rome")

        assert respx.calls.call_count == 1
        assert b"https%3A%2F%2Fimages.test%2Frome.png" in route.calls.last.request.content

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_body_kind_is_kept(self, gateway, png_bytes):
        respx.post(PROXY_URL).mock(
            return_value=httpx.Response(
                504,
                json={
                    "error": "timeout",
                    "message": "Operation timeout after 120 poll attempts",
                    "stage": "polling",
                    "jobId": "job_slow",
                },
            )
        )

        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(png_bytes, "rome")

        error = exc_info.value
        assert error.kind == ConversionFailureKind.TIMEOUT
        assert error.stage == "polling"
        assert error.job_id == "job_slow"
        assert error.status_code == 504

    @pytest.mark.parametrize(
        "status,kind",
        [
            (400, ConversionFailureKind.INVALID_INPUT),
            (413, ConversionFailureKind.INVALID_INPUT),
            (502, ConversionFailureKind.PROVIDER_ERROR),
            (504, ConversionFailureKind.TIMEOUT),
        ],
    )
    @pytest.mark.asyncio
    @respx.mock
    async def test_status_fallback_mapping(self, gateway, png_bytes, status, kind):
        respx.post(PROXY_URL).mock(return_value=httpx.Response(status, text="upstream said no"))

        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(png_bytes, "rome")

        assert exc_info.value.kind == kind

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable_proxy(self, gateway, png_bytes):
        respx.post(PROXY_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.TRANSPORT_ERROR
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    @respx.mock
    async def test_proxy_timeout(self, gateway, png_bytes):
        respx.post(PROXY_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.TIMEOUT

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_asset_url(self, gateway, png_bytes):
        respx.post(PROXY_URL).mock(return_value=httpx.Response(200, json={"jobId": "job_1"}))

        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(png_bytes, "rome")

        assert exc_info.value.kind == ConversionFailureKind.PROVIDER_ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_image_rejected_locally(self, gateway):
        with pytest.raises(ConversionError) as exc_info:
            await gateway.convert(b"", "rome")

        assert exc_info.value.kind == ConversionFailureKind.INVALID_INPUT
        assert respx.calls.call_count == 0


class TestInProcessConversionGateway:
    """Tests for the direct gateway."""

    @pytest.mark.asyncio
    async def test_delegates_to_service(self, png_bytes):
        service = MagicMock()
        service.convert = AsyncMock(return_value=ConversionResult(asset_url="https://cdn.test/a.spz", job_id="job_1"))
        service.provider.close = AsyncMock()
        gateway = InProcessConversionGateway(service)

        result = await gateway.convert(png_bytes, "rome")
        await gateway.close()

        assert result.asset_url == "https://cdn.test/a.spz"
        service.convert.assert_awaited_once_with(png_bytes, "rome", on_progress=None)
        service.provider.close.assert_awaited_once()
