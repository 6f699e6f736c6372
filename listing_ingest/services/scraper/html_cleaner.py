"""
Conservative HTML cleaning and heuristic listing extraction.

clean_html removes only unambiguous noise. Anything whose text mentions a
property fact (beds, baths, price, area, address) survives every rule.
"""
import json
import logging
import re
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag

logger = logging.getLogger(__name__)

PROPERTY_KEYWORDS = ("bed", "bath", "price", "sqft", "bedroom", "bathroom", "square", "address")
SOCIAL_KEYWORDS = ("share", "facebook", "twitter", "instagram", "linkedin", "pinterest", "tweet", "like")
MAX_IMAGES = 20
MAX_FEATURES = 20

_SCRIPT_IMAGE_PATTERNS = (
    re.compile(r"\.(jpg|jpeg|png|gif|webp|svg|bmp|ico|tiff|tif)(\?|\"|'|\s|,|})", re.IGNORECASE),
    re.compile(r"\"image\":\s*\"https?://", re.IGNORECASE),
    re.compile(r"\"imageUrl\":\s*\"https?://", re.IGNORECASE),
    re.compile(r"\"url\":\s*\"https?://[^\"]*\.(jpg|jpeg|png|gif|webp|svg|bmp|ico)", re.IGNORECASE),
    re.compile(r"photos\.", re.IGNORECASE),
    re.compile(r"images?\.", re.IGNORECASE),
    re.compile(r"img[^\"]*\.(jpg|jpeg|png|gif|webp)", re.IGNORECASE),
)

_NOISE_SELECTORS = (
    '[class*="ads"]', '[id*="ads"]', '[class*="ad-"]', '[class*="advertisement"]',
    '[class*="tracking"]', '[id*="tracking"]', '[class*="analytics"]', '[id*="analytics"]',
    '[class*="cookie"]', '[id*="cookie"]', '[class*="consent"]', '[id*="consent"]',
)
_SOCIAL_SELECTOR = (
    '[class*="share"], [class*="social"], [class*="facebook"], '
    '[class*="twitter"], [class*="instagram"], [class*="linkedin"]'
)
_VOID_TAGS = frozenset({"br", "hr", "img", "input", "meta", "link", "source", "picture", "video"})


def has_property_facts(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in PROPERTY_KEYWORDS)


def _text(node: Tag) -> str:
    return node.get_text().strip()


def _remove(node: Tag) -> None:
    if not node.decomposed:
        node.decompose()


def _live(nodes) -> list[Tag]:
    return [n for n in nodes if not n.decomposed]


def _remove_scripts_and_styles(soup: BeautifulSoup) -> None:
    for node in soup.select("style, noscript, iframe, svg, canvas"):
        _remove(node)
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        if not any(p.search(content) for p in _SCRIPT_IMAGE_PATTERNS):
            _remove(script)


def _remove_noise(soup: BeautifulSoup) -> None:
    for selector in _NOISE_SELECTORS:
        for node in _live(soup.select(selector)):
            if not has_property_facts(_text(node)):
                _remove(node)

    for selector in ('[class*="popup"]', '[class*="modal"]'):
        for node in _live(soup.select(selector)):
            text = _text(node).lower()
            if has_property_facts(text):
                continue
            if "cookie" in text or "consent" in text or len(text) < 50:
                _remove(node)

    for node in _live(soup.select('[class*="banner"]')):
        text = _text(node)
        if not has_property_facts(text) and len(text) < 100:
            _remove(node)


def _remove_empty_elements(soup: BeautifulSoup) -> None:
    # Bottom-up so emptied parents are caught in the same pass
    for node in reversed(soup.find_all(True)):
        if node.decomposed or node.name in _VOID_TAGS:
            continue
        if _text(node):
            continue
        if node.find("img") or node.get("src") or node.get("href"):
            continue
        _remove(node)


def _remove_social_blocks(soup: BeautifulSoup) -> None:
    for node in _live(soup.select(_SOCIAL_SELECTOR)):
        text = _text(node).lower()
        if has_property_facts(text):
            continue
        only_social = any(k in text for k in SOCIAL_KEYWORDS) and len(text) < 100
        link_heavy = len(node.find_all("a")) > 2 and len(text) < 50
        if only_social or link_heavy:
            _remove(node)


def _remove_navigation(soup: BeautifulSoup) -> None:
    for tag_name in ("nav", "footer", "header"):
        for node in _live(soup.find_all(tag_name)):
            text = _text(node)
            if len(text) > 100 or has_property_facts(text):
                continue
            link_dense = len(node.find_all("a")) > len(text) / 10
            if tag_name == "header":
                link_dense = link_dense and len(text) < 50
            if link_dense:
                _remove(node)


def _promote_lazy_images(soup: BeautifulSoup) -> None:
    for img in soup.find_all("img"):
        if not img.get("src"):
            lazy = img.get("data-src") or img.get("data-lazy")
            if lazy:
                img["src"] = lazy
        if img.get("data-srcset") and not img.get("srcset"):
            img["srcset"] = img["data-srcset"]
    for source in soup.find_all("source"):
        if source.get("data-srcset") and not source.get("srcset"):
            source["srcset"] = source["data-srcset"]


def clean_html(raw_html: str) -> str:
    """Return the cleaned inner HTML of <body> (or of the fragment)."""
    if not raw_html or not raw_html.strip():
        return ""

    document = BeautifulSoup(raw_html, "html.parser")
    body = document.body if document.body is not None else document
    soup = BeautifulSoup(body.decode_contents(), "html.parser")
    if not soup.get_text().strip() and not soup.find("img"):
        return ""

    _remove_scripts_and_styles(soup)
    _remove_noise(soup)
    _remove_empty_elements(soup)
    _remove_social_blocks(soup)
    _remove_navigation(soup)
    _promote_lazy_images(soup)

    return str(soup)


def extract_text(html: str) -> str:
    """Plain body text with scripts and styles removed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for node in soup.select("script, style"):
        node.decompose()
    root = soup.body if soup.body is not None else soup
    return root.get_text()


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    node = soup.select_one(selector)
    return _text(node) if node is not None else ""


def _first_int(pattern: str, text: str) -> Optional[int]:
    match = re.search(pattern, text or "", re.IGNORECASE)
    if not match:
        return None
    try:
        return int(match.group(1).replace(",", ""))
    except ValueError:
        return None


def parse_property_data(html: str, source_url: str) -> dict:
    """
    Pull candidate listing fields straight from markup.
    Every field is best-effort; missing values stay None / [].
    """
    soup = BeautifulSoup(html or "", "html.parser")
    result: dict[str, Any] = {
        "title": None,
        "address": None,
        "price": None,
        "bedrooms": None,
        "bathrooms": None,
        "square_footage": None,
        "description": None,
        "images": [],
        "features": [],
    }

    title_tag = soup.find("title")
    result["title"] = (
        _first_text(soup, "h1")
        or _first_text(soup, '[class*="title"]')
        or _first_text(soup, '[class*="heading"]')
        or (title_tag.get_text().strip() if title_tag else "")
        or None
    )

    price_node = soup.select_one("[data-price]")
    price_text = (
        _first_text(soup, '[class*="price"]')
        or _first_text(soup, '[id*="price"]')
        or (price_node.get("data-price", "") if price_node is not None else "")
    )
    result["price"] = _first_int(r"[\$€£]?\s*([\d,]*\d)", price_text)

    for selector in ('[class*="address"]', '[id*="address"]', '[itemprop="address"]', '[class*="location"]'):
        node = soup.select_one(selector)
        if node is not None:
            result["address"] = _text(node) or None
            break

    bed_text = _first_text(soup, '[class*="bed"]')
    result["bedrooms"] = _first_int(r"(\d+)\s*(?:bed|br|bedroom)", bed_text)

    bath_text = _first_text(soup, '[class*="bath"]')
    result["bathrooms"] = _first_int(r"(\d+)\s*(?:bath|ba|bathroom)", bath_text)

    sqft_text = (
        _first_text(soup, '[class*="sqft"]')
        or _first_text(soup, '[class*="square"]')
        or _first_text(soup, '[class*="area"]')
    )
    result["square_footage"] = _first_int(r"([\d,]*\d)\s*(?:sq\s*ft|sqft|m²|sq\s*m)", sqft_text)

    images = []
    for img in soup.select("img[src], img[data-src], img[data-lazy]"):
        src = img.get("src") or img.get("data-src") or img.get("data-lazy")
        if not src or any(word in src for word in ("placeholder", "logo", "icon")):
            continue
        images.append(urljoin(source_url, src))
    result["images"] = list(dict.fromkeys(images))[:MAX_IMAGES]

    for selector in (
        '[class*="description"]', '[id*="description"]', '[itemprop="description"]',
        '[class*="details"]', "article p",
    ):
        text = _first_text(soup, selector)
        if len(text) > 50:
            result["description"] = text
            break

    features = []
    for node in soup.select('[class*="feature"], [class*="amenity"], [class*="amenities"]'):
        text = _text(node)
        if text and len(text) < 100:
            features.append(text)
    result["features"] = features[:MAX_FEATURES]

    return result


def property_data_to_text(data: dict) -> str:
    """Render parse_property_data output as "Label: value" lines."""
    lines = []
    labels = (
        ("title", "Title"), ("address", "Address"), ("price", "Price"),
        ("bedrooms", "Bedrooms"), ("bathrooms", "Bathrooms"),
        ("square_footage", "Square Footage"), ("description", "Description"),
    )
    for key, label in labels:
        if data.get(key):
            lines.append(f"{label}: {data[key]}")
    if data.get("features"):
        lines.append("Features:")
        lines.extend(f"• {feature}" for feature in data["features"])
    if data.get("images"):
        lines.append("Images:")
        lines.extend(data["images"])
    return "\n".join(lines)


_WINDOW_STATE_PATTERNS = {
    "preloaded_state": re.compile(r"window\.__PRELOADED_STATE__\s*=\s*({[\s\S]+?});"),
    "initial_state": re.compile(r"window\.INITIAL_STATE\s*=\s*({[\s\S]+?});"),
    "apollo_state": re.compile(r"window\.__APOLLO_STATE__\s*=\s*({[\s\S]+?});"),
    "app_data": re.compile(r"window\.__APP_DATA__\s*=\s*({[\s\S]+?});"),
}


def _loads(content: Optional[str]) -> Any:
    if not content:
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return None


def extract_structured_data(raw_html: str) -> dict:
    """
    Machine-readable data embedded in a page: JSON-LD, Next.js page props,
    window.* state blobs, OpenGraph/Twitter meta and basic page metadata.
    """
    soup = BeautifulSoup(raw_html or "", "html.parser")
    result: dict[str, Any] = {
        "json_ld": [],
        "next_data": None,
        "window_states": {},
        "open_graph": {},
        "comments": [],
        "metadata": {"title": None, "description": None, "canonical": None},
    }

    for script in soup.select('script[type="application/ld+json"]'):
        data = _loads(script.string)
        if data is not None:
            result["json_ld"].append(data)

    next_data = soup.select_one("script#__NEXT_DATA__")
    if next_data is not None:
        result["next_data"] = _loads(next_data.string)

    for script in soup.find_all("script"):
        content = script.string or ""
        for name, pattern in _WINDOW_STATE_PATTERNS.items():
            match = pattern.search(content)
            if match and name not in result["window_states"]:
                data = _loads(match.group(1))
                if data is not None:
                    result["window_states"][name] = data

    for meta in soup.select('meta[property^="og:"]'):
        if meta.get("content"):
            result["open_graph"][meta["property"]] = meta["content"]
    for meta in soup.select('meta[name^="twitter:"]'):
        if meta.get("content"):
            result["open_graph"][meta["name"]] = meta["content"]

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        stripped = comment.strip()
        if stripped.startswith("{"):
            data = _loads(stripped)
            if data is not None:
                result["comments"].append(data)

    title = soup.find("title")
    description = soup.select_one('meta[name="description"]') or soup.select_one('meta[property="og:description"]')
    canonical = soup.select_one('link[rel="canonical"]')
    result["metadata"] = {
        "title": title.get_text().strip() or None if title else None,
        "description": description.get("content") if description is not None else None,
        "canonical": canonical.get("href") if canonical is not None else None,
    }

    logger.debug(
        "Structured data: json_ld=%d next_data=%s window_states=%d og=%d",
        len(result["json_ld"]), result["next_data"] is not None,
        len(result["window_states"]), len(result["open_graph"]),
    )
    return result
