"""
Image pipeline - find every image URL in a generated config, re-host each one
once, and rewrite the config to point at the hosted copies.

The config is an arbitrary JSON tree; walk_strings is the single traversal used
both to collect and to rewrite URLs.
"""
import asyncio
import io
import logging
import re
from typing import Any, Callable, Optional

import httpx
from PIL import Image

from listing_ingest.utils.url_safety import (
    extension_for_mime_type,
    generate_secure_filename,
    is_safe_url,
    is_valid_image_mime_type,
    matches_image_signature,
    sanitize_storage_path,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_DOWNLOAD_BYTES = 25 * 1024 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 30
DEFAULT_CONCURRENCY = 5
RESIZE_MAX_PX = 1920
USER_AGENT = "Mozilla/5.0 (compatible; ListingIngestBot/1.0)"

IMAGE_FIELD_NAMES = frozenset(name.lower() for name in (
    "url", "src", "image", "imageUrl", "image_url",
    "photo", "photoUrl", "photo_url",
    "propertyImage", "backgroundImage",
    "floorplan_url", "virtual_tour_url",
))
_IMAGE_URL_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)(\?|$)", re.IGNORECASE)
_MEDIA_PATH_MARKERS = ("/image", "/photo", "/img")


class ImageProcessingError(Exception):
    """One image could not be re-hosted."""


def walk_strings(value: Any, rewrite: Callable[[str, Optional[str]], str], key: Optional[str] = None) -> Any:
    """
    Depth-first copy of a JSON tree with every string passed through
    rewrite(string, parent_key). Non-string leaves are copied as-is.
    """
    if isinstance(value, str):
        return rewrite(value, key)
    if isinstance(value, dict):
        return {k: walk_strings(v, rewrite, k) for k, v in value.items()}
    if isinstance(value, list):
        return [walk_strings(item, rewrite, key) for item in value]
    return value


def is_image_reference(value: str, key: Optional[str] = None) -> bool:
    if not value.startswith(("http://", "https://")):
        return False
    if key is not None and key.lower() in IMAGE_FIELD_NAMES:
        return True
    if _IMAGE_URL_RE.search(value):
        return True
    return any(marker in value for marker in _MEDIA_PATH_MARKERS)


def extract_image_urls(doc: Any) -> list[str]:
    """Image URLs in document order, de-duplicated. Does not modify doc."""
    found: list[str] = []

    def collect(value: str, key: Optional[str]) -> str:
        if is_image_reference(value, key):
            found.append(value)
        return value

    walk_strings(doc, collect)
    return list(dict.fromkeys(found))


def replace_image_urls_in_config(doc: Any, url_map: dict[str, str]) -> Any:
    """Structurally identical copy with mapped strings replaced."""
    if not url_map:
        return walk_strings(doc, lambda value, key: value)
    return walk_strings(doc, lambda value, key: url_map.get(value, value))


def optimize_image(data: bytes) -> bytes:
    """
    Re-encode an oversized image as JPEG: quality 85 down to 55, then a
    1920px resize at quality 80. Raises ImageProcessingError if still too big.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Unreadable image: {e}") from e

    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    def encode(img: Image.Image, quality: int) -> bytes:
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)
        return buffer.getvalue()

    optimized = data
    quality = 85
    while len(optimized) > MAX_IMAGE_BYTES and quality > 50:
        optimized = encode(image, quality)
        logger.debug("Re-encoded at quality %d: %d bytes", quality, len(optimized))
        quality -= 10

    if len(optimized) > MAX_IMAGE_BYTES:
        resized = image.copy()
        resized.thumbnail((RESIZE_MAX_PX, RESIZE_MAX_PX))
        optimized = encode(resized, 80)

    if len(optimized) > MAX_IMAGE_BYTES:
        raise ImageProcessingError(
            f"Image too large even after optimization ({len(optimized) / 1024 / 1024:.2f}MB)"
        )
    return optimized


async def _download(client: httpx.AsyncClient, url: str) -> tuple[bytes, str]:
    async with client.stream("GET", url) as response:
        if response.status_code != 200:
            raise ImageProcessingError(f"Download failed: HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if not is_valid_image_mime_type(content_type):
            raise ImageProcessingError(f"Invalid image type: {content_type or 'missing'}")

        chunks = []
        size = 0
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if size > MAX_DOWNLOAD_BYTES:
                raise ImageProcessingError("Download exceeds size limit")
            chunks.append(chunk)
    return b"".join(chunks), content_type.split(";")[0].strip().lower()


async def download_and_upload_image(client: httpx.AsyncClient, url: str, destination_prefix: str) -> str:
    """
    Re-host one image and return its durable URL.

    Raises:
        ImageProcessingError on any validation, download or upload failure.
    """
    from listing_ingest.services.storage import is_storage_url, upload_image

    if is_storage_url(url):
        return url
    if not await is_safe_url(url):
        raise ImageProcessingError("Invalid image URL")

    try:
        data, mime = await _download(client, url)
    except httpx.TimeoutException as e:
        raise ImageProcessingError("Download timeout") from e
    except httpx.HTTPError as e:
        raise ImageProcessingError(f"Download failed: {e}") from e

    if not matches_image_signature(data, mime):
        raise ImageProcessingError("Invalid image file")

    if len(data) > MAX_IMAGE_BYTES:
        data = optimize_image(data)
        mime = "image/jpeg"

    path = sanitize_storage_path(
        f"{destination_prefix}/{generate_secure_filename(data, extension_for_mime_type(mime))}"
    )
    if path is None:
        raise ImageProcessingError("Invalid file path")

    try:
        return await upload_image(path, data, mime)
    except Exception as e:
        raise ImageProcessingError(f"Upload failed: {e}") from e


async def process_images(
    urls: list[str],
    destination_prefix: str,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> dict[str, str]:
    """
    Re-host each unique URL once, at most `concurrency` at a time.
    Returns {original_url: new_url}; failed URLs are absent.
    """
    if sanitize_storage_path(destination_prefix) is None:
        logger.error("Invalid image destination prefix: %s", destination_prefix)
        return {}

    unique = list(dict.fromkeys(urls))
    if not unique:
        return {}

    semaphore = asyncio.Semaphore(concurrency)
    url_map: dict[str, str] = {}

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(DOWNLOAD_TIMEOUT_SECONDS),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=False,
    ) as client:

        async def handle(url: str) -> None:
            async with semaphore:
                try:
                    url_map[url] = await download_and_upload_image(client, url, destination_prefix)
                except ImageProcessingError as e:
                    logger.warning("Failed to process image %s: %s", url, str(e))

        await asyncio.gather(*(handle(url) for url in unique))

    logger.info("Re-hosted %d/%d images under %s", len(url_map), len(unique), destination_prefix)
    return url_map


async def rehost_config_images(config: dict, destination_prefix: str) -> dict:
    """Extract, re-host and rewrite in one pass."""
    urls = extract_image_urls(config)
    if not urls:
        logger.info("No images found in config")
        return config
    url_map = await process_images(urls, destination_prefix)
    return replace_image_urls_in_config(config, url_map)
