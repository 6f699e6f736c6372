"""
Website-specific HTML processors.

Each supported portal gets a SiteProcessor: an optional page trimmer, a gallery
image extractor, an optional in-place cleaner for the main-content element and
the selector of that element. Everything here is a pure function over HTML.
"""
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

MIN_GALLERY_IMAGE_PX = 50
DEFAULT_MAIN_SELECTOR = "main"

_IMAGE_SRC_ATTRS = ("src", "data-src", "data-lazy", "data-original")
_EXCLUDED_IMAGE_RE = re.compile(r"icon|logo|avatar|placeholder|sprite|pixel|tracking|beacon", re.IGNORECASE)
_PREFERRED_IMAGE_RE = re.compile(r"photo|image|gallery|listing|media", re.IGNORECASE)
_IMAGE_EXTENSION_RE = re.compile(r"\.(jpe?g|png|webp|gif)(\?|$)", re.IGNORECASE)

_GALLERY_CONTAINER_SELECTORS = (
    '[class*="gallery"] img',
    '[class*="Gallery"] img',
    '[class*="carousel"] img',
    '[class*="photo"] img',
    '[id*="gallery"] img',
    '[id*="photo"] img',
    '[class*="PhotoViewer"] img',
)


def _image_src(img: Tag) -> Optional[str]:
    for attr in _IMAGE_SRC_ATTRS:
        value = img.get(attr)
        if value and value.strip():
            return value.strip()
    return None


def _int_attr(img: Tag, name: str) -> int:
    try:
        return int(str(img.get(name, "0")).strip().rstrip("px") or 0)
    except ValueError:
        return 0


def _dedupe(urls: list[str]) -> list[str]:
    return list(dict.fromkeys(urls))


def _passes_size_or_keyword_filter(img: Tag, src: str) -> bool:
    """
    Dimension filter when both dimensions are present, keyword filter otherwise.
    """
    width, height = _int_attr(img, "width"), _int_attr(img, "height")
    if width and height:
        return width > MIN_GALLERY_IMAGE_PX and height > MIN_GALLERY_IMAGE_PX
    if _EXCLUDED_IMAGE_RE.search(src):
        return False
    return bool(_PREFERRED_IMAGE_RE.search(src) or _IMAGE_EXTENSION_RE.search(src))


# --- realtor.com -----------------------------------------------------------


def process_realtor_html(raw_html: str) -> str:
    """Keep <main> only, minus the sidebar, scripts and tracking pixels."""
    if not raw_html or not raw_html.strip():
        return raw_html

    soup = BeautifulSoup(raw_html, "html.parser")
    main = soup.find("main")
    if main is None:
        return raw_html

    for selector in (
        'div[data-testid="ldp-sidebar"]',
        "script",
        "style",
        "noscript",
        'img[width="1"][height="1"]',
        'img[src*="tracking"]',
        'img[src*="beacon"]',
    ):
        for node in main.select(selector):
            node.decompose()

    return str(main)


def extract_realtor_gallery_images(html: str) -> list[str]:
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    urls = []
    for container in soup.select('div[data-testid="gallery-photo-container"]'):
        img = container.find("img")
        if img is None:
            continue
        src = _image_src(img)
        if src:
            urls.append(src)
    return _dedupe(urls)


# --- redfin.com ------------------------------------------------------------


def extract_redfin_gallery_images(html: str) -> list[str]:
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    urls = []
    candidates = soup.select('[class*="gallery"] img, [class*="photo"] img, [class*="carousel"] img')
    candidates += soup.select('[id*="photo"] img, [id*="gallery"] img, [class*="PhotoViewer"] img')
    for img in candidates:
        src = _image_src(img)
        if not src:
            continue
        if _int_attr(img, "width") > MIN_GALLERY_IMAGE_PX and _int_attr(img, "height") > MIN_GALLERY_IMAGE_PX:
            urls.append(src)
    return _dedupe(urls)


# --- homes.com -------------------------------------------------------------

HOMES_NOISE_CLASSES = (
    "schools-container",
    "parks-in-area-section",
    "transportation-container",
    "area-factors-container",
    "environment-factor-container",
    "estimated-value",
    "home-valuation-report-cta-container",
    "home-values-container",
    "average-home-value-container",
    "ldp-property-history-container",
    "suggested-listings-container",
    "breadcrumbs-container",
)


def remove_homes_sections(main: Tag) -> None:
    """Drop neighborhood, valuation and history widgets in place."""
    selector = ", ".join(f".{name}" for name in HOMES_NOISE_CLASSES)
    for node in main.select(selector):
        node.decompose()


# --- generic ---------------------------------------------------------------


def extract_gallery_images(html: str, base_url: Optional[str] = None) -> list[str]:
    """
    Layered heuristic for sites without a dedicated extractor: images inside
    gallery-like containers first, every other <img> only if nothing was found.
    """
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")

    def collect(images) -> list[str]:
        found = []
        for img in images:
            src = _image_src(img)
            if not src or src.startswith("data:"):
                continue
            if not _passes_size_or_keyword_filter(img, src):
                continue
            found.append(urljoin(base_url, src) if base_url else src)
        return found

    urls = collect(soup.select(", ".join(_GALLERY_CONTAINER_SELECTORS)))
    if not urls:
        urls = collect(soup.find_all("img"))
    return _dedupe(urls)


@dataclass(frozen=True)
class SiteProcessor:
    domain: str
    gallery_extractor: Callable[[str], list[str]]
    html_processor: Optional[Callable[[str], str]] = None
    main_cleaner: Optional[Callable[[Tag], None]] = None
    main_selector: str = DEFAULT_MAIN_SELECTOR


SITE_PROCESSORS = (
    SiteProcessor(
        domain="realtor.com",
        gallery_extractor=extract_realtor_gallery_images,
        html_processor=process_realtor_html,
    ),
    SiteProcessor(
        domain="redfin.com",
        gallery_extractor=extract_redfin_gallery_images,
    ),
    SiteProcessor(
        domain="homes.com",
        gallery_extractor=extract_gallery_images,
        main_cleaner=remove_homes_sections,
    ),
)


def get_site_processor(url: str) -> Optional[SiteProcessor]:
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None
    for processor in SITE_PROCESSORS:
        if hostname in (processor.domain, f"www.{processor.domain}"):
            return processor
    return None


def get_html_processor(url: str) -> Optional[Callable[[str], str]]:
    processor = get_site_processor(url)
    return processor.html_processor if processor else None


def get_main_content_selector(url: str) -> str:
    processor = get_site_processor(url)
    return processor.main_selector if processor else DEFAULT_MAIN_SELECTOR


def get_main_cleaner(url: str) -> Optional[Callable[[Tag], None]]:
    processor = get_site_processor(url)
    return processor.main_cleaner if processor else None


def extract_gallery_for_url(url: str, gallery_html: str) -> list[str]:
    processor = get_site_processor(url)
    if processor is None:
        return extract_gallery_images(gallery_html, base_url=url)
    return processor.gallery_extractor(gallery_html)
