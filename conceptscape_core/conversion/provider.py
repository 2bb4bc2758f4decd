"""
World Labs (Marble) Provider

HTTP client for the image-to-world API:

    POST /marble/v1/media-assets:prepare_upload  -> media asset + signed URL
    PUT  <signed url>                            -> image bytes
    POST /marble/v1/worlds:generate              -> operation id
    GET  /marble/v1/operations/{id}              -> done / error / world id
    GET  /marble/v1/worlds/{id}                  -> splat asset URLs
"""

from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from ..errors import ConversionError, ConversionFailureKind
from .job import PollStatus, UploadPayload

logger = structlog.get_logger(__name__)

SPZ_RESOLUTION_PRIORITY = ("full_res", "500k", "100k")


def select_asset_url(world: Dict[str, Any]) -> str:
    """
    Pick the best splat URL from a world description.

    Raises:
        ConversionError: kind ``provider-error`` when no URL is present
    """
    if isinstance(world.get("world"), dict):
        world = world["world"]

    spz_urls = ((world.get("assets") or {}).get("splats") or {}).get("spz_urls") or {}
    for resolution in SPZ_RESOLUTION_PRIORITY:
        url = spz_urls.get(resolution)
        if url:
            return url

    raise ConversionError(
        "World generated but no splat URL found",
        kind=ConversionFailureKind.PROVIDER_ERROR,
        stage="polling",
        details={"available": sorted(spz_urls)},
    )


class WorldLabsProvider:
    """
    Marble API client.

    The API key travels as a per-request header so it is never forwarded
    to the signed upload host.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.worldlabs.ai",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("World Labs API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"WLT-Api-Key": self.api_key}

    async def _request(
        self,
        method: str,
        path: str,
        stage: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._auth_headers,
                json=json,
            )
        except httpx.HTTPError as e:
            raise ConversionError(
                f"World Labs request failed: {e}",
                kind=ConversionFailureKind.TRANSPORT_ERROR,
                stage=stage,
            ) from e

        if not response.is_success:
            raise ConversionError(
                f"World Labs API error: {response.status_code}",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                stage=stage,
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ConversionError(
                "World Labs returned a non-JSON body",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                stage=stage,
            ) from e

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    async def prepare_upload(self, payload: UploadPayload) -> Tuple[str, Dict[str, Any]]:
        """Register a media asset. Returns (media asset id, upload info)."""
        data = await self._request(
            "POST",
            "/marble/v1/media-assets:prepare_upload",
            stage="uploading",
            json={
                "file_name": payload.filename,
                "kind": "image",
                "extension": payload.extension,
            },
        )

        asset_id = (data.get("media_asset") or {}).get("id")
        upload_info = data.get("upload_info") or {}
        if not asset_id or not upload_info.get("upload_url"):
            raise ConversionError(
                "Prepare upload response missing media asset or upload URL",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                stage="uploading",
            )
        return asset_id, upload_info

    async def upload_to_signed_url(self, upload_info: Dict[str, Any], payload: UploadPayload) -> None:
        client = await self._get_client()
        headers = dict(upload_info.get("required_headers") or {})
        headers["Content-Type"] = payload.mime_type

        try:
            response = await client.request(
                upload_info.get("upload_method") or "PUT",
                upload_info["upload_url"],
                headers=headers,
                content=payload.data,
            )
        except httpx.HTTPError as e:
            raise ConversionError(
                f"Signed upload failed: {e}",
                kind=ConversionFailureKind.TRANSPORT_ERROR,
                stage="uploading",
            ) from e

        if not response.is_success:
            raise ConversionError(
                f"Failed to upload file: {response.status_code}",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                stage="uploading",
                status_code=response.status_code,
            )

    async def upload(self, payload: UploadPayload) -> str:
        """Upload an image and return its media asset handle."""
        asset_id, upload_info = await self.prepare_upload(payload)
        await self.upload_to_signed_url(upload_info, payload)
        logger.info("Image uploaded as media asset", media_asset_id=asset_id, size_bytes=payload.size)
        return asset_id

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def submit(self, asset_handle: str, concept: str) -> str:
        """Start world generation. Returns the operation id."""
        text_prompt = concept or "A 3D environment"
        data = await self._request(
            "POST",
            "/marble/v1/worlds:generate",
            stage="generating",
            json={
                "display_name": concept or "Generated World",
                "world_prompt": {
                    "type": "image",
                    "image_prompt": {
                        "source": "media_asset",
                        "media_asset_id": asset_handle,
                    },
                    "text_prompt": text_prompt,
                },
            },
        )

        operation_id = data.get("operation_id")
        if not operation_id:
            raise ConversionError(
                "Generate response missing operation_id",
                kind=ConversionFailureKind.PROVIDER_ERROR,
                stage="generating",
            )
        return operation_id

    async def poll(self, operation_id: str) -> PollStatus:
        data = await self._request("GET", f"/marble/v1/operations/{operation_id}", stage="polling")
        metadata = data.get("metadata") or {}

        if not data.get("done"):
            progress = (metadata.get("progress") or {}).get("status")
            return PollStatus.pending(progress=progress)

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                error = error.get("message") or str(error)
            return PollStatus.error(f"Operation failed: {error}")

        world_id = metadata.get("world_id") or (data.get("response") or {}).get("world_id")
        if not world_id:
            return PollStatus.error("Operation completed but no world_id found")
        return PollStatus.success(world_id)

    async def fetch_world(self, world_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/marble/v1/worlds/{world_id}", stage="polling")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
