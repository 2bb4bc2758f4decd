"""
Educational Content Generation

Asks Gemini for structured lesson material about a concept. The model is
told to answer in JSON but often wraps the object in prose or code fences,
so the first-to-last brace span is extracted before validation.
"""

import json
import re
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError

from ..errors import ContentGenerationError
from ..narration.timeline import estimate_subtitle_timeline
from .gemini import GeminiClient, candidate_parts
from .models import EducationalContent

logger = structlog.get_logger(__name__)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")

CONTENT_PROMPT = """You are an educational content creator for an immersive 3D learning experience. A user has requested to explore: "{concept}"

Generate educational content including:
1. Learning objectives (3-5 bullet points)
2. Key facts (with sources)
3. Callouts for important points
4. A narration script
5. Subtitle timing
6. Sources for further reading

Return as JSON matching this structure:
{{
  "concept": "{concept}",
  "sceneId": "{scene_id}",
  "learningObjectives": ["objective1", "objective2"],
  "keyFacts": [{{"text": "fact", "source": "source"}}],
  "callouts": [{{"text": "callout", "anchor": "center"}}],
  "narrationScript": "full narration text",
  "subtitleLines": [{{"t": 0, "text": "subtitle"}}],
  "sources": [{{"label": "Source", "url": "https://..."}}]
}}"""


def extract_json_block(text: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` span embedded in ``text``."""
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise ContentGenerationError("No JSON found in content response")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ContentGenerationError(f"Malformed JSON in content response: {e.msg}") from e
    if not isinstance(payload, dict):
        raise ContentGenerationError("Content response JSON is not an object")
    return payload


def parse_content(
    text: str,
    concept: str,
    scene_id: str = "default",
    words_per_second: float = 2.5,
) -> EducationalContent:
    """
    Validate a raw model answer into ``EducationalContent``.

    A narration script is required. A missing subtitle timeline is derived
    from the script rather than rejected.
    """
    payload = extract_json_block(text)
    if not payload.get("concept"):
        payload["concept"] = concept
    if not payload.get("sceneId") and not payload.get("scene_id"):
        payload["sceneId"] = scene_id

    try:
        content = EducationalContent.model_validate(payload)
    except ValidationError as e:
        raise ContentGenerationError(
            "Content response failed validation",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    if not content.narration_script.strip():
        raise ContentGenerationError("Content response has no narration script")

    if not content.subtitle_lines:
        timeline = estimate_subtitle_timeline(content.narration_script, words_per_second)
        content = content.model_copy(update={"subtitle_lines": timeline})

    return content


class ContentGenerator(GeminiClient):
    """Generates ``EducationalContent`` with a Gemini text model."""

    error_class = ContentGenerationError

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        words_per_second: float = 2.5,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, client=client)
        self.model = model
        self.words_per_second = words_per_second

    def build_prompt(self, concept: str, scene_id: str = "default") -> str:
        return CONTENT_PROMPT.format(concept=concept, scene_id=scene_id)

    async def generate(self, concept: str, scene_id: str = "default") -> EducationalContent:
        log = logger.bind(concept=concept, model=self.model)
        body = {"contents": [{"parts": [{"text": self.build_prompt(concept, scene_id)}]}]}

        data = await self.generate_content(self.model, body)
        text = "".join(part.get("text", "") for part in candidate_parts(data))
        if not text:
            raise ContentGenerationError("Content response contained no text")

        content = parse_content(text, concept, scene_id, self.words_per_second)
        log.info(
            "Educational content generated",
            objectives=len(content.learning_objectives),
            subtitle_lines=len(content.subtitle_lines),
        )
        return content
