"""Unit tests for Gemini content and image generation."""

import json

import httpx
import pytest
import respx

from conceptscape_core.errors import ContentGenerationError, ImageGenerationError
from conceptscape_core.generation import (
    CalloutAnchor,
    ContentGenerator,
    EducationalContent,
    ImageGenerator,
    extract_json_block,
    parse_content,
)

GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
CONTENT_URL = f"{GEMINI_BASE}/models/gemini-2.0-flash:generateContent"
IMAGE_URL_PRIMARY = f"{GEMINI_BASE}/models/image-a:generateContent"
IMAGE_URL_SECONDARY = f"{GEMINI_BASE}/models/image-b:generateContent"


@pytest.fixture
def content_generator():
    return ContentGenerator(api_key="test-gemini-key", base_url=GEMINI_BASE)


@pytest.fixture
def image_generator():
    return ImageGenerator(api_key="test-gemini-key", models=("image-a", "image-b"), base_url=GEMINI_BASE)


class TestExtractJsonBlock:
    """Tests for pulling JSON out of prose."""

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"concept": "rome", "nested": {"a": 1}}\n```\nEnjoy!'

        assert extract_json_block(text) == {"concept": "rome", "nested": {"a": 1}}

    def test_no_json(self):
        with pytest.raises(ContentGenerationError):
            extract_json_block("I cannot help with that.")

    def test_malformed_json(self):
        with pytest.raises(ContentGenerationError):
            extract_json_block('{"concept": "rome",}')


class TestParseContent:
    """Tests for content validation."""

    def test_camel_case_payload(self, content_payload):
        content = parse_content(json.dumps(content_payload), "photosynthesis")

        assert content.scene_id == "photosynthesis"
        assert content.key_facts[0].source == "Biology 101"
        assert content.callouts[0].anchor == CalloutAnchor.LEFT
        assert [line.timestamp_seconds for line in content.subtitle_timeline] == [0, 2.5]

    def test_fills_concept_and_scene(self, content_payload):
        del content_payload["concept"]
        del content_payload["sceneId"]

        content = parse_content(json.dumps(content_payload), "photosynthesis", scene_id="photosynthesis")

        assert content.concept == "photosynthesis"
        assert content.scene_id == "photosynthesis"

    def test_nulls_become_empty(self, content_payload):
        content_payload["sources"] = None
        content_payload["callouts"] = None

        content = parse_content(json.dumps(content_payload), "photosynthesis")

        assert content.sources == []
        assert content.callouts == []

    def test_unknown_anchor_centers(self, content_payload):
        content_payload["callouts"] = [{"text": "Sun", "anchor": "somewhere"}]

        content = parse_content(json.dumps(content_payload), "photosynthesis")

        assert content.callouts[0].anchor == CalloutAnchor.CENTER

    def test_missing_timeline_is_derived(self, content_payload):
        del content_payload["subtitleLines"]

        content = parse_content(json.dumps(content_payload), "photosynthesis", words_per_second=2.5)

        assert [(line.timestamp_seconds, line.text) for line in content.subtitle_lines] == [
            (0.0, "Plants turn light into sugar."),
            (2.0, "Oxygen is released."),
        ]

    def test_missing_narration_rejected(self, content_payload):
        content_payload["narrationScript"] = "   "

        with pytest.raises(ContentGenerationError):
            parse_content(json.dumps(content_payload), "photosynthesis")

    def test_invalid_shape_rejected(self, content_payload):
        content_payload["subtitleLines"] = [{"t": -1, "text": "before time"}]

        with pytest.raises(ContentGenerationError) as exc_info:
            parse_content(json.dumps(content_payload), "photosynthesis")

        assert exc_info.value.details["errors"]

    def test_api_shape_uses_aliases(self, content_payload):
        content = EducationalContent.model_validate(content_payload)

        data = content.to_api()

        assert data["narrationScript"] == content_payload["narrationScript"]
        assert data["subtitleLines"][1]["t"] == 2.5


class TestContentGenerator:
    """Tests for ContentGenerator.generate."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_generate(self, content_generator, content_response):
        route = respx.post(CONTENT_URL).mock(return_value=httpx.Response(200, json=content_response))

        content = await content_generator.generate("photosynthesis", scene_id="photosynthesis")

        assert content.concept == "photosynthesis"
        assert len(content.subtitle_lines) == 2
        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == "test-gemini-key"
        prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
        assert '"photosynthesis"' in prompt
        await content_generator.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self, content_generator):
        respx.post(CONTENT_URL).mock(return_value=httpx.Response(500, text="internal"))

        with pytest.raises(ContentGenerationError) as exc_info:
            await content_generator.generate("rome")

        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error(self, content_generator):
        respx.post(CONTENT_URL).mock(side_effect=httpx.ConnectError("offline"))

        with pytest.raises(ContentGenerationError):
            await content_generator.generate("rome")

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_candidates(self, content_generator):
        respx.post(CONTENT_URL).mock(return_value=httpx.Response(200, json={"candidates": []}))

        with pytest.raises(ContentGenerationError):
            await content_generator.generate("rome")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        generator = ContentGenerator(api_key="")

        with pytest.raises(ContentGenerationError):
            await generator.generate("rome")


class TestImageGenerator:
    """Tests for ImageGenerator.generate."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_inline_image(self, image_generator, png_bytes, make_image_response):
        route = respx.post(IMAGE_URL_PRIMARY).mock(
            return_value=httpx.Response(200, json=make_image_response(png_bytes))
        )

        image = await image_generator.generate("ancient rome")

        assert image.data == png_bytes
        assert image.mime_type == "image/png"
        assert image.model == "image-a"
        assert image.data_uri.startswith("data:image/png;base64,")
        body = json.loads(route.calls.last.request.content)
        assert body["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_next_model(self, image_generator, png_bytes, make_text_response, make_image_response):
        respx.post(IMAGE_URL_PRIMARY).mock(return_value=httpx.Response(200, json=make_text_response("No image today")))
        respx.post(IMAGE_URL_SECONDARY).mock(return_value=httpx.Response(200, json=make_image_response(png_bytes)))

        image = await image_generator.generate("ancient rome")

        assert image.model == "image-b"

    @pytest.mark.asyncio
    @respx.mock
    async def test_url_in_text_is_downloaded(self, image_generator, png_bytes, make_text_response):
        respx.post(IMAGE_URL_PRIMARY).mock(
            return_value=httpx.Response(
                200, json=make_text_response("Your render: https://cdn.test/renders/rome.png done")
            )
        )
        respx.get("https://cdn.test/renders/rome.png").mock(
            return_value=httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})
        )

        image = await image_generator.generate("ancient rome")

        assert image.data == png_bytes
        assert image.source_url == "https://cdn.test/renders/rome.png"

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_models_fail(self, image_generator):
        respx.post(IMAGE_URL_PRIMARY).mock(return_value=httpx.Response(429, text="quota"))
        respx.post(IMAGE_URL_SECONDARY).mock(side_effect=httpx.ConnectError("offline"))

        with pytest.raises(ImageGenerationError) as exc_info:
            await image_generator.generate("ancient rome")

        attempts = exc_info.value.details["attempts"]
        assert [attempt["model"] for attempt in attempts] == ["image-a", "image-b"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_corrupt_inline_data(self, image_generator):
        bad = {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "***"}}]}}]}
        respx.post(IMAGE_URL_PRIMARY).mock(return_value=httpx.Response(200, json=bad))
        respx.post(IMAGE_URL_SECONDARY).mock(return_value=httpx.Response(200, json=bad))

        with pytest.raises(ImageGenerationError):
            await image_generator.generate("ancient rome")

    def test_models_required(self):
        with pytest.raises(ValueError):
            ImageGenerator(api_key="k", models=())
