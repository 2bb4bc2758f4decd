"""End-to-end pipeline runs against mocked upstream APIs."""

import base64
import json

import httpx
import pytest
import pytest_asyncio
import respx

from conceptscape_core.api import create_app

pytestmark = pytest.mark.integration

GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
WORLDLABS_BASE = "https://api.worldlabs.ai"
LOCAL_BASE = "http://assets.test"
SIGNED_URL = "https://uploads.test/signed/ma_e2e"
WORLD_ASSET = "https://cdn.test/world_e2e/500k.spz"


@pytest_asyncio.fixture
async def client(settings):
    app = create_app(settings=settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    await app.state.orchestrator.close()


def mock_gemini(content_payload, png_bytes):
    text = "Here is your lesson.\n" + json.dumps(content_payload)
    respx.post(f"{GEMINI_BASE}/models/gemini-2.0-flash:generateContent").mock(
        return_value=httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})
    )
    image_part = {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png_bytes).decode()}}
    return respx.post(f"{GEMINI_BASE}/models/gemini-2.5-flash-image:generateContent").mock(
        return_value=httpx.Response(200, json={"candidates": [{"content": {"parts": [image_part]}}]})
    )


def mock_worldlabs():
    respx.post(f"{WORLDLABS_BASE}/marble/v1/media-assets:prepare_upload").mock(
        return_value=httpx.Response(
            200, json={"media_asset": {"id": "ma_e2e"}, "upload_info": {"upload_url": SIGNED_URL}}
        )
    )
    upload = respx.put(SIGNED_URL).mock(return_value=httpx.Response(200))
    respx.post(f"{WORLDLABS_BASE}/marble/v1/worlds:generate").mock(
        return_value=httpx.Response(200, json={"operation_id": "op_e2e"})
    )
    respx.get(f"{WORLDLABS_BASE}/marble/v1/operations/op_e2e").mock(
        side_effect=[
            httpx.Response(200, json={"done": False}),
            httpx.Response(200, json={"done": True, "response": {"world_id": "world_e2e"}}),
        ]
    )
    respx.get(f"{WORLDLABS_BASE}/marble/v1/worlds/world_e2e").mock(
        return_value=httpx.Response(
            200, json={"assets": {"splats": {"spz_urls": {"100k": "https://cdn.test/100k.spz", "500k": WORLD_ASSET}}}}
        )
    )
    return upload


class TestEndToEnd:
    """Full orchestration through the HTTP service."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_remote_catalog_concept_is_generated(self, client, content_payload, png_bytes):
        image_route = mock_gemini(content_payload, png_bytes)
        upload = mock_worldlabs()

        response = await client.post("/api/orchestrate", json={"concept": "Ancient Rome"})

        assert response.status_code == 200
        body = response.json()
        assert body["assetUrl"] == WORLD_ASSET
        assert body["sourceOfAsset"] == "generated"
        assert body["narrationScript"] == content_payload["narrationScript"]
        assert image_route.called
        assert upload.calls.last.request.content == png_bytes

    @pytest.mark.asyncio
    @respx.mock
    async def test_cached_scene_short_circuits(self, client, content_payload, png_bytes):
        image_route = mock_gemini(content_payload, png_bytes)
        respx.head(f"{LOCAL_BASE}/scenes/photosynthesis.spz").mock(
            return_value=httpx.Response(200, headers={"content-length": "1048576"})
        )

        response = await client.post("/api/orchestrate", json={"concept": "photosynthesis"})

        assert response.status_code == 200
        body = response.json()
        assert body["assetUrl"] == "/scenes/photosynthesis.spz"
        assert body["sourceOfAsset"] == "cache"
        assert not image_route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_conversion_outage_falls_back(self, client, content_payload, png_bytes):
        mock_gemini(content_payload, png_bytes)
        respx.post(f"{WORLDLABS_BASE}/marble/v1/media-assets:prepare_upload").mock(
            return_value=httpx.Response(503, text="maintenance")
        )

        response = await client.post("/api/orchestrate", json={"concept": "ancient rome"})

        assert response.status_code == 200
        body = response.json()
        assert body["sourceOfAsset"] == "fallback"
        assert body["assetUrl"] == "https://sparkjs.dev/assets/splats/butterfly.spz"
        assert any("provider-error" in w for w in body["warnings"])
