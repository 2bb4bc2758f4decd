"""Shared pytest fixtures for testing."""

import base64
import json
from typing import Any, Dict

import pytest

from conceptscape_core.catalog import CatalogEntry, SceneCatalog, default_catalog
from conceptscape_core.config import Settings

DEMO_URL = "https://sparkjs.dev/assets/splats/butterfly.spz"
GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
WORLDLABS_BASE = "https://api.worldlabs.ai"
LOCAL_BASE = "http://assets.test"

# Smallest thing that sniffs as a PNG
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 56


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with fake keys and a fast poll loop."""
    return Settings(
        _env_file=None,
        gemini_api_key="test-gemini-key",
        worldlabs_api_key="test-wlt-key",
        deepgram_api_key="test-deepgram-key",
        elevenlabs_api_key="",
        local_asset_base_url=LOCAL_BASE,
        conversion_poll_interval=0,
        conversion_max_attempts=5,
        conversion_max_transport_failures=3,
        narration_enabled=False,
    )


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def catalog() -> SceneCatalog:
    """The catalog shipped with the package."""
    return default_catalog()


@pytest.fixture
def untagged_catalog() -> SceneCatalog:
    """A catalog nothing fuzzy-matches; its default entry is the demo scene."""
    return SceneCatalog(
        [
            CatalogEntry.create(id="demo", title="Demo", primary_asset_ref=DEMO_URL),
            CatalogEntry.create(
                id="photosynthesis",
                title="Photosynthesis",
                primary_asset_ref="/scenes/photosynthesis.spz",
            ),
        ]
    )


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def content_payload() -> Dict[str, Any]:
    return {
        "concept": "photosynthesis",
        "sceneId": "photosynthesis",
        "learningObjectives": ["Explain how plants capture light"],
        "keyFacts": [{"text": "Chlorophyll absorbs red and blue light", "source": "Biology 101"}],
        "callouts": [{"text": "Chloroplast", "anchor": "left"}],
        "narrationScript": "Plants turn light into sugar. Oxygen is released.",
        "subtitleLines": [
            {"t": 0, "text": "Plants turn light into sugar."},
            {"t": 2.5, "text": "Oxygen is released."},
        ],
        "sources": [{"label": "Wikipedia", "url": "https://en.wikipedia.org/wiki/Photosynthesis"}],
    }


def gemini_text_response(text: str) -> Dict[str, Any]:
    """A generateContent response carrying one text part."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def gemini_image_response(data: bytes, mime_type: str = "image/png") -> Dict[str, Any]:
    """A generateContent response carrying one inline image."""
    return {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "Here is your image."},
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode()}},
                    ]
                }
            }
        ]
    }


@pytest.fixture
def make_text_response():
    return gemini_text_response


@pytest.fixture
def make_image_response():
    return gemini_image_response


@pytest.fixture
def content_response(content_payload) -> Dict[str, Any]:
    prose = "Sure! Here is the lesson:\n```json\n" + json.dumps(content_payload) + "\n```"
    return gemini_text_response(prose)
