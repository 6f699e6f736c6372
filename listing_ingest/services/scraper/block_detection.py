"""
Blocked-content detection for scraped pages.

Detectors are plain objects with a detect(body) method returning the matched
marker or None. The default keyword detector only inspects short pages and the
head of long ones, so a listing that mentions "captcha" in a footer is not flagged.
"""
import re
from typing import Optional, Protocol

DEFAULT_BLOCK_MARKERS = (
    "captcha",
    "are you a robot",
    "are you a human",
    "verify you are human",
    "press & hold",
    "press and hold",
    "access denied",
    "access to this page has been denied",
    "request blocked",
    "unusual traffic",
    "too many requests",
    "rate limit exceeded",
    "checking your browser",
    "just a moment...",
    "cf-chl",
    "attention required! | cloudflare",
    "perimeterx",
    "px-captcha",
    "datadome",
    "enable javascript and cookies to continue",
)

SHORT_PAGE_CHARS = 5000
HEAD_SCAN_CHARS = 3000


class BlockDetector(Protocol):
    def detect(self, body: str) -> Optional[str]:
        ...


class KeywordBlockDetector:
    """Case-insensitive substring match over the start of the body."""

    def __init__(
        self,
        markers: tuple[str, ...] = DEFAULT_BLOCK_MARKERS,
        short_page_chars: int = SHORT_PAGE_CHARS,
        head_scan_chars: int = HEAD_SCAN_CHARS,
    ):
        self.markers = tuple(m.lower() for m in markers)
        self.short_page_chars = short_page_chars
        self.head_scan_chars = head_scan_chars

    def detect(self, body: str) -> Optional[str]:
        if not body:
            return None
        if len(body) <= self.short_page_chars:
            haystack = body.lower()
        else:
            haystack = body[: self.head_scan_chars].lower()
        haystack = re.sub(r"\s+", " ", haystack)
        for marker in self.markers:
            if marker in haystack:
                return marker
        return None


class NullBlockDetector:
    """Never reports a block."""

    def detect(self, body: str) -> Optional[str]:
        return None


default_detector = KeywordBlockDetector()
