"""Shared Gemini REST client."""

from typing import Any, Dict, List, Optional, Type

import httpx
import structlog

from ..errors import ConceptscapeError

logger = structlog.get_logger(__name__)


class GeminiClient:
    """
    Thin wrapper over the ``generateContent`` REST endpoint.

    Subclasses set ``error_class`` so HTTP and transport failures surface
    as the stage-specific pipeline error.
    """

    error_class: Type[ConceptscapeError] = ConceptscapeError

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            logger.warning("Gemini API key not provided")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:generateContent"

    async def generate_content(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise self.error_class("Gemini API key is not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                self.endpoint(model),
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.HTTPError as e:
            raise self.error_class(
                f"Gemini request failed: {e}", details={"model": model}
            ) from e

        if not response.is_success:
            raise self.error_class(
                f"Gemini API error: {response.status_code}",
                details={"model": model, "status_code": response.status_code, "body": response.text[:500]},
            )

        try:
            return response.json()
        except ValueError as e:
            raise self.error_class("Gemini returned a non-JSON body", details={"model": model}) from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


def candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Parts of the first candidate, or an empty list."""
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []
