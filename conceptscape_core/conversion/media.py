"""Normalize image sources into upload-ready bytes."""

import base64
import binascii
import re
from typing import Any, Optional, Union
from urllib.parse import unquote_to_bytes, urlparse

import httpx
import structlog

from ..errors import ConversionError, ConversionFailureKind
from .job import UploadPayload

logger = structlog.get_logger(__name__)

ImageSource = Union[bytes, bytearray, memoryview, str, Any]

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^,]*)?),(?P<data>.*)$", re.DOTALL)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def sniff_mime_type(data: bytes, default: str = "image/png") -> str:
    """Guess an image MIME type from magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return default


def _payload(data: bytes, mime_type: Optional[str], filename: Optional[str]) -> UploadPayload:
    mime = (mime_type or "").strip().lower() or sniff_mime_type(data)
    name = filename or f"image.{_EXTENSIONS.get(mime, 'png')}"
    return UploadPayload(data=data, mime_type=mime, filename=name)


def _invalid(message: str, **details: Any) -> ConversionError:
    return ConversionError(
        message,
        kind=ConversionFailureKind.INVALID_INPUT,
        stage="uploading",
        details=details or None,
    )


def decode_data_uri(uri: str) -> UploadPayload:
    """Decode a ``data:`` URI, base64 or percent-encoded."""
    match = _DATA_URI.match(uri.strip())
    if not match:
        raise _invalid("Malformed data URI")

    params = [p.strip().lower() for p in match.group("params").split(";") if p.strip()]
    raw = match.group("data")
    if "base64" in params:
        try:
            data = base64.b64decode(re.sub(r"\s+", "", raw), validate=True)
        except (binascii.Error, ValueError) as e:
            raise _invalid("Data URI is not valid base64", error=str(e))
    else:
        data = unquote_to_bytes(raw)

    return _payload(data, match.group("mime") or None, None)


async def fetch_image(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> UploadPayload:
    """Download a remote image."""
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise _invalid(f"Failed to fetch image: {e}", url=url)
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise _invalid(f"Failed to fetch image: {response.status_code}", url=url)

    mime = response.headers.get("content-type", "").split(";")[0].strip()
    if mime and not mime.startswith("image/"):
        mime = ""
    filename = urlparse(url).path.rsplit("/", 1)[-1] or None
    if filename and "." not in filename:
        filename = None
    return _payload(response.content, mime or None, filename)


async def normalize_image_source(
    source: ImageSource,
    client: Optional[httpx.AsyncClient] = None,
    max_bytes: Optional[int] = None,
    filename: Optional[str] = None,
) -> UploadPayload:
    """
    Turn an in-memory buffer, a readable binary file-like object, a data
    URI or an http(s) URL into an ``UploadPayload``.

    The same image yields the same bytes whichever form it arrives in.

    Raises:
        ConversionError: kind ``invalid-input`` for anything unusable
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        payload = _payload(bytes(source), None, filename)

    elif isinstance(source, str):
        text = source.strip()
        if text.startswith("data:"):
            payload = decode_data_uri(text)
        elif urlparse(text).scheme in ("http", "https"):
            payload = await fetch_image(text, client=client)
        else:
            raise _invalid("Unsupported image source string")

    elif hasattr(source, "read"):
        data = source.read()
        if not isinstance(data, (bytes, bytearray)):
            raise _invalid("File-like image source must be opened in binary mode")
        name = filename or getattr(source, "name", None)
        if isinstance(name, str):
            name = name.replace("\\", "/").rsplit("/", 1)[-1]
        else:
            name = None
        payload = _payload(bytes(data), None, name)

    else:
        raise _invalid(f"Unsupported image source type: {type(source).__name__}")

    if payload.size == 0:
        raise _invalid("Image payload is empty")
    if max_bytes is not None and payload.size > max_bytes:
        raise _invalid(
            "Image exceeds upload size limit",
            size_bytes=payload.size,
            max_bytes=max_bytes,
        )

    logger.debug("Image source normalized", mime_type=payload.mime_type, size_bytes=payload.size)
    return payload
