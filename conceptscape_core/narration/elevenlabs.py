"""ElevenLabs narration synthesis."""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from ..errors import NarrationError

logger = structlog.get_logger(__name__)


@dataclass
class VoiceSettings:
    """ElevenLabs voice tuning."""

    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True

    def to_dict(self) -> dict:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }


class ElevenLabsNarrator:
    """
    Turns a narration script into MP3 audio.

    Defaults to the calm "Rachel" voice on the monolingual v1 model.
    """

    def __init__(
        self,
        api_key: str,
        voice_id: str = "21m00Tcm4TlvDq8ikWAM",
        model_id: str = "eleven_monolingual_v1",
        base_url: str = "https://api.elevenlabs.io/v1",
        voice_settings: Optional[VoiceSettings] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("ElevenLabs API key is required")

        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.base_url = base_url
        self.voice_settings = voice_settings or VoiceSettings()
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "xi-api-key": self.api_key,
                    "Content-Type": "application/json",
                    "Accept": "audio/mpeg",
                },
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def synthesize(self, text: str) -> bytes:
        """Synthesize ``text``; empty text yields empty audio."""
        if not text or not text.strip():
            return b""

        client = await self._get_client()
        body = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings.to_dict(),
        }

        try:
            response = await client.post(f"/text-to-speech/{self.voice_id}", json=body)
        except httpx.HTTPError as e:
            raise NarrationError(f"ElevenLabs request failed: {e}") from e

        if response.status_code == 401:
            raise NarrationError("Invalid ElevenLabs API key", details={"status_code": 401})

        if response.status_code != 200:
            raise NarrationError(
                f"ElevenLabs API error: {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

        logger.info("Narration synthesized", characters=len(text), bytes=len(response.content))
        return response.content

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
