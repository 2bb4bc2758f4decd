"""Cache-validity check for catalog assets."""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import httpx
import structlog

from .registry import CatalogEntry, SceneCatalog

logger = structlog.get_logger(__name__)


@dataclass
class CacheCheck:
    """Outcome of verifying a catalog entry as a pipeline shortcut."""

    valid: bool
    asset_url: str
    reason: str = ""
    size_bytes: Optional[int] = None


class AssetVerifier:
    """
    Confirms a catalog entry points at a reachable, plausibly sized,
    locally-hosted asset.

    Remote references (public demo scenes) are rejected without any
    network call: they exist, but they are not specific to the concept.
    """

    def __init__(
        self,
        catalog: SceneCatalog,
        base_url: str = "http://localhost:5173",
        min_size_bytes: int = 100,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.catalog = catalog
        self.base_url = base_url
        self.min_size_bytes = min_size_bytes
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    def resolve_url(self, asset_ref: str) -> str:
        """Absolute URL used to probe a local asset reference."""
        return urljoin(self.base_url.rstrip("/") + "/", asset_ref.lstrip("/"))

    async def verify(self, entry: CatalogEntry) -> CacheCheck:
        ref = entry.primary_asset_ref
        log = logger.bind(entry_id=entry.id, asset_ref=ref)

        if not self.catalog.is_local(entry):
            log.info("Catalog asset is not locally hosted, not a cache hit")
            return CacheCheck(valid=False, asset_url=ref, reason="not-local")

        client = await self._get_client()
        try:
            response = await client.head(self.resolve_url(ref), follow_redirects=True)
        except httpx.HTTPError as e:
            log.warning("Local asset probe failed", error=str(e))
            return CacheCheck(valid=False, asset_url=ref, reason="unreachable")

        if not response.is_success:
            log.info("Local asset missing", status_code=response.status_code)
            return CacheCheck(valid=False, asset_url=ref, reason=f"status-{response.status_code}")

        size: Optional[int] = None
        content_length = response.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                log.warning("Unparseable content-length", content_length=content_length)
                return CacheCheck(valid=False, asset_url=ref, reason="bad-length")

            if size < self.min_size_bytes:
                log.warning("Local asset too small, may be invalid", size_bytes=size)
                return CacheCheck(valid=False, asset_url=ref, reason="too-small", size_bytes=size)

        log.info("Local asset verified", size_bytes=size)
        return CacheCheck(valid=True, asset_url=ref, reason="ok", size_bytes=size)

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
