"""Concept image generation with Gemini image models."""

import base64
import binascii
import re
from typing import List, Optional, Sequence

import httpx
import structlog

from ..errors import ImageGenerationError
from .gemini import GeminiClient, candidate_parts
from .models import GeneratedImage

logger = structlog.get_logger(__name__)

_IMAGE_URL = re.compile(r"https?://[^\s\"')]+\.(?:jpg|jpeg|png|webp)", re.IGNORECASE)

IMAGE_PROMPT = (
    "Create a cinematic wide-shot, photorealistic environment depicting: {concept}. "
    "Eye-level view with a clear foreground, midground and background, natural lighting, "
    "no people in close-up, no text or labels. The image will be converted into an "
    "explorable 3D Gaussian Splat world, so show a coherent, walkable space."
)


class ImageGenerator(GeminiClient):
    """
    Tries each configured image model in order until one returns an image.

    Accepts inline base64 image parts, an ``imageUrl`` part, or an image
    URL mentioned in the text part.
    """

    error_class = ImageGenerationError

    def __init__(
        self,
        api_key: str,
        models: Sequence[str] = ("gemini-2.5-flash-image", "gemini-2.0-flash-exp-image-generation"),
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, client=client)
        if not models:
            raise ValueError("At least one image model is required")
        self.models: List[str] = list(models)

    def build_prompt(self, concept: str) -> str:
        return IMAGE_PROMPT.format(concept=concept)

    async def generate(self, concept: str) -> GeneratedImage:
        body = {
            "contents": [{"parts": [{"text": self.build_prompt(concept)}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

        failures = []
        for model in self.models:
            log = logger.bind(concept=concept, model=model)
            try:
                data = await self.generate_content(model, body)
                image = await self._extract_image(data, model)
            except ImageGenerationError as e:
                log.warning("Image model failed", error=e.message)
                failures.append({"model": model, "error": e.message})
                continue

            log.info("Concept image generated", mime_type=image.mime_type, bytes=len(image.data))
            return image

        raise ImageGenerationError(
            "No image model produced an image",
            details={"attempts": failures},
        )

    async def _extract_image(self, data: dict, model: str) -> GeneratedImage:
        parts = candidate_parts(data)

        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and str(inline.get("mimeType") or inline.get("mime_type") or "").startswith("image/"):
                try:
                    raw = base64.b64decode(inline.get("data") or "", validate=True)
                except (binascii.Error, ValueError) as e:
                    raise ImageGenerationError("Inline image data is not valid base64") from e
                if not raw:
                    raise ImageGenerationError("Inline image data is empty")
                return GeneratedImage(
                    data=raw,
                    mime_type=inline.get("mimeType") or inline.get("mime_type"),
                    model=model,
                )

            if isinstance(part.get("imageUrl"), str):
                return await self._download(part["imageUrl"], model)

        for part in parts:
            match = _IMAGE_URL.search(part.get("text") or "")
            if match:
                return await self._download(match.group(0), model)

        raise ImageGenerationError("Response contained no image")

    async def _download(self, url: str, model: str) -> GeneratedImage:
        client = await self._get_client()
        try:
            response = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Failed to download image: {e}") from e

        if not response.is_success or not response.content:
            raise ImageGenerationError(
                f"Failed to download image: {response.status_code}",
                details={"url": url},
            )

        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return GeneratedImage(data=response.content, mime_type=mime_type, model=model, source_url=url)
