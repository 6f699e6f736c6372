"""
URL and storage-path safety checks.
Every outbound image fetch goes through is_safe_url (SSRF protection); every
storage write goes through sanitize_storage_path.
"""
import asyncio
import hashlib
import ipaddress
import logging
import re
import socket
import time
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_ALLOWED_PORTS = frozenset({None, 80, 443, 8080, 8443})
_BLOCKED_HOSTNAMES = frozenset({
    "localhost", "127.0.0.1", "0.0.0.0", "::1",
    "metadata.google.internal", "169.254.169.254",
})

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE,
)
_FILENAME_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
_IMAGE_FILENAME_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)

TEMP_PREVIEW_PREFIX = "temp-preview"

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
IMAGE_MIME_TYPES = frozenset({
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp",
})

_MIME_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


async def is_safe_url(url: str) -> bool:
    """
    Validate that a URL doesn't target internal/private networks (SSRF protection).

    Resolves the hostname and checks all resolved IPs are globally routable.
    Blocks private, loopback, link-local, reserved, CGNAT, and multicast ranges.
    """
    try:
        parsed = urlparse(url)

        if parsed.scheme not in _ALLOWED_SCHEMES:
            return False

        if parsed.port not in _ALLOWED_PORTS:
            return False

        hostname = parsed.hostname
        if not hostname:
            return False

        if hostname.lower() in _BLOCKED_HOSTNAMES:
            return False

        try:
            loop = asyncio.get_running_loop()
            addr_infos = await loop.run_in_executor(
                None, socket.getaddrinfo, hostname, None,
            )
        except socket.gaierror:
            return False

        for addr_info in addr_infos:
            ip_str = addr_info[4][0]
            try:
                ip = ipaddress.ip_address(ip_str)
            except ValueError:
                return False

            if not ip.is_global or ip.is_multicast:
                logger.warning(
                    "SSRF blocked: %s resolves to non-public IP %s", hostname, ip_str,
                )
                return False

        return True
    except Exception:
        return False


def sanitize_storage_path(path: str) -> Optional[str]:
    """
    Normalize a storage path and reject anything outside the allowed layout.

    Accepted: "<prefix>/<preview-id>" or "<prefix>/<preview-id>/<file>.<image-ext>",
    where prefix is "temp-preview" or a UUID.
    """
    if not path or not isinstance(path, str):
        return None

    normalized = path.replace("..", "")
    normalized = re.sub(r"/+", "/", normalized).strip("/")

    parts = normalized.split("/")
    if len(parts) < 2 or len(parts) > 3:
        return None

    prefix, preview_id = parts[0], parts[1]
    if prefix != TEMP_PREVIEW_PREFIX and not _UUID_RE.match(prefix):
        return None
    if not _UUID_RE.match(preview_id):
        return None

    if len(parts) == 3:
        filename = parts[2]
        if not _FILENAME_RE.match(filename) or not _IMAGE_FILENAME_RE.search(filename):
            return None

    return normalized


def is_valid_image_mime_type(mime_type: str) -> bool:
    return mime_type.split(";")[0].strip().lower() in IMAGE_MIME_TYPES


def extension_for_mime_type(mime_type: str) -> str:
    return _MIME_TO_EXTENSION.get(mime_type.split(";")[0].strip().lower(), "jpg")


def matches_image_signature(data: bytes, mime_type: str) -> bool:
    """Check the file's magic bytes agree with its declared content type."""
    if len(data) < 12:
        return False
    mime = mime_type.split(";")[0].strip().lower()
    if mime in ("image/jpeg", "image/jpg"):
        return data[:3] == b"\xff\xd8\xff"
    if mime == "image/png":
        return data[:4] == b"\x89PNG"
    if mime == "image/gif":
        return data[:4] == b"GIF8"
    if mime == "image/webp":
        return data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    return False


def generate_secure_filename(data: bytes, extension: str) -> str:
    """Stored filename: <ms-timestamp>-<sha256 prefix>.<ext>."""
    digest = hashlib.sha256(data).hexdigest()[:16]
    ext = extension.lower().lstrip(".")
    if ext not in IMAGE_EXTENSIONS:
        ext = "jpg"
    return f"{int(time.time() * 1000)}-{digest}.{ext}"
