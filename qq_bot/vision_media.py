"""
Vision media helper - turns QQ image references into files a vision model can read.

Image segments arrive as base64:// payloads, file:// URLs, absolute paths
on the bot host, or http(s) URLs. Everything is bounded by
VisionConfig.max_bytes and VisionConfig.timeout. Public entry points never
raise for expected failures (missing file, oversized payload, network or
decode errors); they log and return None so callers can treat "no image"
uniformly.

Temp files written here are not removed automatically; see
cleanup_vision_temp_files().
"""

import asyncio
import base64
import binascii
import logging
import os
import stat
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

import httpx

from qq_bot.config import (
    MAX_VISION_IMAGE_BYTES,
    MAX_VISION_IMAGE_COUNT,
    VISION_IMAGE_TIMEOUT,
    VisionConfig,
)
from qq_bot.exceptions import (
    ImageAcquisitionError,
    ImageDecodeError,
    ImageFetchError,
    ImageTooLargeError,
)
from qq_bot.image_reference import BASE64_SCHEME, ReferenceKind, parse_image_reference

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_VISION_IMAGE_BYTES",
    "MAX_VISION_IMAGE_COUNT",
    "VISION_IMAGE_TIMEOUT",
    "DEFAULT_IMAGE_EXT",
    "parse_content_length",
    "ext_from_content_type",
    "ext_from_url",
    "read_response_body_with_limit",
    "write_temp_image_file",
    "materialize_image_for_vision",
    "materialize_images_for_vision",
    "download_image_url_as_base64",
    "cleanup_vision_temp_files",
]

DEFAULT_IMAGE_EXT = ".jpg"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
}

URL_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}


def ext_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """Map an image Content-Type header to a file extension."""
    if not content_type:
        return None
    mime = content_type.split(";")[0].strip().lower()
    return CONTENT_TYPE_EXTENSIONS.get(mime)


def ext_from_url(raw_url: str) -> Optional[str]:
    """Take a known image extension from the URL path, normalising .jpeg to .jpg."""
    try:
        url_path = urlparse(raw_url).path
    except ValueError:
        return None
    ext = os.path.splitext(url_path)[1].lower()
    if ext not in URL_IMAGE_EXTENSIONS:
        return None
    return ".jpg" if ext == ".jpeg" else ext


def parse_content_length(headers: Mapping[str, str]) -> Optional[int]:
    """Read Content-Length, returning None when missing or malformed."""
    value = headers.get("content-length")
    if not value:
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


async def read_response_body_with_limit(
    response: httpx.Response, max_bytes: int
) -> Optional[bytes]:
    """
    Stream a response body, stopping as soon as it grows past max_bytes.

    Guards against missing or lying Content-Length headers.

    Args:
        response: Streaming httpx response (from client.stream())
        max_bytes: Maximum body size

    Returns:
        Body bytes, or None if the limit was exceeded (the stream is closed)
    """
    chunks: List[bytes] = []
    received = 0

    async for chunk in response.aiter_bytes():
        if not chunk:
            continue
        received += len(chunk)
        if received > max_bytes:
            await response.aclose()
            return None
        chunks.append(chunk)

    return b"".join(chunks)


async def write_temp_image_file(
    data: bytes,
    message_id: Union[str, int],
    index: int,
    ext_hint: str,
    config: Optional[VisionConfig] = None,
) -> str:
    """
    Write image bytes to a uniquely named file in the temp directory.

    Name: <prefix><message_id>_<epoch ms>_<index><ext>

    Args:
        data: Image bytes
        message_id: Owning message identifier
        index: Position of the image within the message
        ext_hint: Extension including the leading dot; anything else becomes .jpg
        config: Vision settings (temp dir and prefix)

    Returns:
        Path of the written file
    """
    cfg = config or VisionConfig()
    safe_ext = ext_hint if ext_hint and ext_hint.startswith(".") else DEFAULT_IMAGE_EXT
    name = f"{cfg.tmp_prefix}{message_id}_{int(time.time() * 1000)}_{index}{safe_ext}"
    out_path = Path(cfg.tmp_dir) / name
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(None, lambda: out_path.write_bytes(data))
    logger.debug(f"Wrote {len(data)} bytes to {out_path}")
    return str(out_path)


def _decode_embedded(encoded: str, max_bytes: int) -> bytes:
    body = "".join(encoded.split())
    if not body:
        raise ImageDecodeError("Empty base64 payload")

    # Tolerate stripped padding
    body += "=" * (-len(body) % 4)
    try:
        data = base64.b64decode(body)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 payload: {e}")

    if not data:
        raise ImageDecodeError("Base64 payload decoded to zero bytes")
    if len(data) > max_bytes:
        raise ImageTooLargeError(
            f"Embedded image is {len(data)} bytes (limit {max_bytes})"
        )
    return data


def _validate_local_file(local_path: str, max_bytes: int) -> None:
    try:
        st = os.stat(local_path)
    except OSError as e:
        raise ImageAcquisitionError(f"Local image not accessible: {local_path} ({e})")

    if not stat.S_ISREG(st.st_mode):
        raise ImageAcquisitionError(f"Local image is not a regular file: {local_path}")
    if st.st_size > max_bytes:
        raise ImageTooLargeError(
            f"Local image {local_path} is {st.st_size} bytes (limit {max_bytes})"
        )


@asynccontextmanager
async def _http_client(
    client: Optional[httpx.AsyncClient], timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client when given, else a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
        yield owned


async def _check_declared_size(
    client: httpx.AsyncClient, url: str, cfg: VisionConfig
) -> None:
    """Best-effort HEAD: reject early when the server declares an oversized body."""
    try:
        response = await asyncio.wait_for(client.head(url), timeout=cfg.timeout)
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        # Some hosts block HEAD; size is enforced again during GET
        logger.debug(f"HEAD failed for {url[:100]}: {e!r}")
        return

    if response.is_success:
        length = parse_content_length(response.headers)
        if length is not None and length > cfg.max_bytes:
            raise ImageTooLargeError(
                f"HEAD declares {length} bytes for {url[:100]} (limit {cfg.max_bytes})"
            )


async def _stream_image(
    client: httpx.AsyncClient, url: str, cfg: VisionConfig
) -> Tuple[bytes, Optional[str]]:
    headers = {"User-Agent": cfg.user_agent}
    async with client.stream("GET", url, headers=headers) as response:
        if not response.is_success:
            raise ImageFetchError(f"HTTP {response.status_code} for {url[:100]}")

        length = parse_content_length(response.headers)
        if length is not None and length > cfg.max_bytes:
            raise ImageTooLargeError(
                f"GET declares {length} bytes for {url[:100]} (limit {cfg.max_bytes})"
            )

        body = await read_response_body_with_limit(response, cfg.max_bytes)
        if body is None:
            raise ImageTooLargeError(
                f"Body of {url[:100]} exceeded {cfg.max_bytes} bytes while streaming"
            )
        if not body:
            raise ImageFetchError(f"Empty response body from {url[:100]}")

        return body, response.headers.get("content-type")


async def _fetch_image_with_limit(
    client: httpx.AsyncClient, url: str, cfg: VisionConfig
) -> Tuple[bytes, Optional[str]]:
    """GET an image within cfg.timeout for the whole transfer, body included."""
    try:
        return await asyncio.wait_for(_stream_image(client, url, cfg), timeout=cfg.timeout)
    except asyncio.TimeoutError:
        raise ImageFetchError(f"Timed out after {cfg.timeout}s fetching {url[:100]}")
    except httpx.HTTPError as e:
        raise ImageFetchError(f"Failed to fetch {url[:100]}: {e}")


async def materialize_image_for_vision(
    raw: str,
    message_id: Union[str, int],
    index: int,
    config: Optional[VisionConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    Resolve an image reference to a local file path for the vision model.

    - base64:// payloads are decoded and written to a temp .jpg file
    - file:// URLs and absolute paths are validated and returned unchanged
    - http(s) URLs are fetched (HEAD pre-check, bounded GET) into a temp file

    Args:
        raw: Image reference string
        message_id: Owning message identifier (used in the temp file name)
        index: Position of the image within the message
        config: Vision settings (defaults to VisionConfig.from_env())
        client: Optional httpx client to reuse for remote URLs

    Returns:
        Local file path, or None if the image cannot be used
    """
    cfg = config or VisionConfig.from_env()
    reference = parse_image_reference(raw)

    try:
        if reference.kind is ReferenceKind.EMBEDDED:
            data = _decode_embedded(reference.value, cfg.max_bytes)
            return await write_temp_image_file(data, message_id, index, DEFAULT_IMAGE_EXT, cfg)

        if reference.is_local:
            _validate_local_file(reference.value, cfg.max_bytes)
            return reference.value

        if reference.kind is ReferenceKind.REMOTE_URL:
            url = reference.value
            async with _http_client(client, cfg.timeout) as http:
                await _check_declared_size(http, url, cfg)
                body, content_type = await _fetch_image_with_limit(http, url, cfg)

            ext = ext_from_content_type(content_type) or ext_from_url(url) or DEFAULT_IMAGE_EXT
            path = await write_temp_image_file(body, message_id, index, ext, cfg)
            logger.info(f"Downloaded {len(body)} bytes for vision: {url[:100]} -> {path}")
            return path

        logger.debug(f"Unsupported image reference: {(raw or '')[:100]!r}")
        return None

    except ImageAcquisitionError as e:
        logger.info(f"Image not usable for vision: {e}")
        return None
    except Exception as e:
        logger.warning(f"Failed to prepare image for vision: {e}")
        return None


async def materialize_images_for_vision(
    refs: Iterable[str],
    message_id: Union[str, int],
    config: Optional[VisionConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[str]:
    """Materialize the first config.max_count references of a message, in order.

    Failed references are dropped from the result.
    """
    cfg = config or VisionConfig.from_env()
    paths = []
    for index, raw in enumerate(refs):
        if index >= cfg.max_count:
            logger.info(f"Message {message_id}: ignoring images beyond {cfg.max_count}")
            break
        path = await materialize_image_for_vision(raw, message_id, index, cfg, client)
        if path:
            paths.append(path)
    return paths


async def download_image_url_as_base64(
    raw_url: str,
    config: Optional[VisionConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    Fetch a remote image and return it as a base64:// payload.

    Same size and timeout limits as materialize_image_for_vision(),
    without the HEAD pre-check.

    Returns:
        "base64://..." string, or None on any failure
    """
    cfg = config or VisionConfig.from_env()
    reference = parse_image_reference(raw_url)
    if reference.kind is not ReferenceKind.REMOTE_URL:
        logger.info(f"Not an http(s) image URL: {(raw_url or '')[:100]!r}")
        return None

    try:
        async with _http_client(client, cfg.timeout) as http:
            body, _ = await _fetch_image_with_limit(http, reference.value, cfg)
        return BASE64_SCHEME + base64.b64encode(body).decode("ascii")
    except ImageAcquisitionError as e:
        logger.info(f"External image not usable: {e}")
        return None
    except Exception as e:
        logger.warning(f"Failed to download external image as base64: {e}")
        return None


def cleanup_vision_temp_files(
    paths: Iterable[str], config: Optional[VisionConfig] = None
) -> int:
    """
    Delete temp images previously written by this module.

    Only files named with the temp prefix inside the configured temp
    directory are touched; caller-owned local paths are left alone.

    Returns:
        Number of files removed
    """
    cfg = config or VisionConfig.from_env()
    tmp_dir = Path(cfg.tmp_dir).resolve()
    removed = 0

    for raw_path in paths:
        if not raw_path:
            continue
        path = Path(raw_path)
        if not path.name.startswith(cfg.tmp_prefix) or path.parent.resolve() != tmp_dir:
            logger.debug(f"Not a vision temp file, leaving in place: {path}")
            continue
        try:
            if path.is_file():
                path.unlink()
                removed += 1
        except OSError as e:
            logger.warning(f"Failed to remove vision temp file {path}: {e}")

    return removed
