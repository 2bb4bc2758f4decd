"""Build a fully wired orchestrator from settings."""

from typing import Optional

import structlog

from ..catalog.registry import default_catalog, load_catalog
from ..catalog.verifier import AssetVerifier
from ..config import Settings, get_settings
from ..conversion.gateway import (
    AssetConversionGateway,
    ConversionGateway,
    InProcessConversionGateway,
)
from ..conversion.service import create_conversion_service
from ..generation.content import ContentGenerator
from ..generation.images import ImageGenerator
from ..narration.elevenlabs import ElevenLabsNarrator
from .engine import GenerationOrchestrator

logger = structlog.get_logger(__name__)


def create_gateway(settings: Settings) -> ConversionGateway:
    """
    In-process conversion when a World Labs key is configured, otherwise
    the remote conversion proxy.
    """
    if settings.worldlabs_api_key:
        return InProcessConversionGateway(create_conversion_service(settings))
    return AssetConversionGateway(
        proxy_url=settings.conversion_proxy_url,
        timeout=settings.conversion_proxy_timeout,
    )


def create_orchestrator(
    settings: Optional[Settings] = None,
    gateway: Optional[ConversionGateway] = None,
) -> GenerationOrchestrator:
    settings = settings or get_settings()

    if settings.catalog_path:
        catalog = load_catalog(settings.catalog_path, local_namespace=settings.local_asset_namespace)
    else:
        catalog = default_catalog(local_namespace=settings.local_asset_namespace)

    verifier = AssetVerifier(
        catalog,
        base_url=settings.local_asset_base_url,
        min_size_bytes=settings.min_cache_asset_bytes,
    )
    content = ContentGenerator(
        api_key=settings.gemini_api_key,
        model=settings.gemini_content_model,
        words_per_second=settings.narration_words_per_second,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout,
    )
    images = ImageGenerator(
        api_key=settings.gemini_api_key,
        models=settings.gemini_image_models,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout,
    )

    narrator = None
    if settings.narration_enabled and settings.elevenlabs_api_key:
        narrator = ElevenLabsNarrator(
            api_key=settings.elevenlabs_api_key,
            voice_id=settings.elevenlabs_voice_id,
            model_id=settings.elevenlabs_model,
        )
    elif settings.narration_enabled:
        logger.warning("Narration enabled but no ElevenLabs API key configured")

    return GenerationOrchestrator(
        catalog=catalog,
        verifier=verifier,
        content_generator=content,
        image_generator=images,
        gateway=gateway or create_gateway(settings),
        demo_asset_url=settings.demo_asset_url or None,
        narrator=narrator,
    )
