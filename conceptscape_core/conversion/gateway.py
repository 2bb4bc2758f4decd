"""
Asset Conversion Gateway

Client-facing entry point for conversions. The HTTP gateway hands the
whole job to the proxy's ``POST /api/convert`` and awaits one response,
so callers never see the provider's poll cadence.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx
import structlog

from ..errors import ConversionError, ConversionFailureKind
from .job import ConversionResult
from .media import ImageSource, normalize_image_source
from .service import ConversionService, JobCallback

logger = structlog.get_logger(__name__)

_STATUS_KINDS = {
    400: ConversionFailureKind.INVALID_INPUT,
    413: ConversionFailureKind.INVALID_INPUT,
    422: ConversionFailureKind.INVALID_INPUT,
    504: ConversionFailureKind.TIMEOUT,
}


class ConversionGateway(ABC):
    """Image + concept in, resolved 3D asset URL out."""

    @abstractmethod
    async def convert(
        self,
        image: ImageSource,
        concept: str,
        on_progress: Optional[JobCallback] = None,
    ) -> ConversionResult:
        pass

    async def close(self) -> None:
        pass


class InProcessConversionGateway(ConversionGateway):
    """Runs the conversion service directly, without HTTP."""

    def __init__(self, service: ConversionService):
        self.service = service

    async def convert(
        self,
        image: ImageSource,
        concept: str,
        on_progress: Optional[JobCallback] = None,
    ) -> ConversionResult:
        return await self.service.convert(image, concept, on_progress=on_progress)

    async def close(self) -> None:
        await self.service.provider.close()


class AssetConversionGateway(ConversionGateway):
    """Calls a remote conversion proxy."""

    def __init__(
        self,
        proxy_url: str = "http://localhost:3001/api/convert",
        timeout: float = 660.0,
        forward_urls: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.forward_urls = forward_urls
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def convert(
        self,
        image: ImageSource,
        concept: str,
        on_progress: Optional[JobCallback] = None,
    ) -> ConversionResult:
        client = await self._get_client()
        log = logger.bind(concept=concept, proxy_url=self.proxy_url)

        data = {"concept": concept}
        files = None
        if (
            self.forward_urls
            and isinstance(image, str)
            and urlparse(image.strip()).scheme in ("http", "https")
        ):
            data["image_url"] = image.strip()
        else:
            payload = await normalize_image_source(image, client=client)
            files = {"image": (payload.filename, payload.data, payload.mime_type)}

        try:
            response = await client.post(self.proxy_url, data=data, files=files)
        except httpx.TimeoutException as e:
            log.error("Conversion proxy timed out")
            raise ConversionError(
                "Conversion proxy timed out",
                kind=ConversionFailureKind.TIMEOUT,
            ) from e
        except httpx.HTTPError as e:
            log.error("Conversion proxy unreachable", error=str(e))
            raise ConversionError(
                f"Conversion proxy unreachable: {e}",
                kind=ConversionFailureKind.TRANSPORT_ERROR,
            ) from e

        body = self._json(response)
        if not response.is_success:
            raise self._error_from_response(response.status_code, body)

        asset_url = body.get("assetUrl")
        if not asset_url:
            raise ConversionError(
                "Conversion proxy returned no assetUrl",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                job_id=body.get("jobId"),
            )

        log.info("Conversion complete", job_id=body.get("jobId"))
        return ConversionResult(
            asset_url=asset_url,
            job_id=body.get("jobId") or "",
            world_id=body.get("worldId"),
            attempts=body.get("attempts") or 0,
        )

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _error_from_response(status_code: int, body: Dict[str, Any]) -> ConversionError:
        try:
            kind = ConversionFailureKind(body.get("error"))
        except ValueError:
            kind = _STATUS_KINDS.get(status_code, ConversionFailureKind.PROVIDER_ERROR)

        return ConversionError(
            body.get("message") or f"Conversion proxy error: {status_code}",
            kind=kind,
            stage=body.get("stage"),
            job_id=body.get("jobId"),
            status_code=status_code,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
