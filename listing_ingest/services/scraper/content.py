"""
Listing text resolution - decides what text (if any) a scrape yielded for the
extraction model. An empty result means the page cannot be used.
"""
import logging
from typing import Optional

from bs4 import BeautifulSoup

from listing_ingest.schemas.pipeline import ScrapeResult
from listing_ingest.services.scraper.html_cleaner import (
    extract_structured_data,
    parse_property_data,
    property_data_to_text,
)
from listing_ingest.services.scraper.html_processors import (
    get_html_processor,
    get_main_cleaner,
    get_main_content_selector,
)
from listing_ingest.services.scraper.text import extract_structured_text, format_structured_json_to_text

logger = logging.getLogger(__name__)

UNSCRAPABLE_MESSAGE = "This website cannot be scraped. Please try a different URL."


def main_content_text(raw_html: str, url: str) -> str:
    """Text of the site's main-content element after its site cleaner ran."""
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")
    main = soup.select_one(get_main_content_selector(url))
    if main is None:
        return ""
    cleaner = get_main_cleaner(url)
    if cleaner is not None:
        cleaner(main)
    return extract_structured_text(str(main))


def processed_page_text(raw_html: str, url: str) -> str:
    if not raw_html:
        return ""
    processor = get_html_processor(url)
    html = processor(raw_html) if processor else raw_html
    return extract_structured_text(html)


def heuristic_text(raw_html: str, url: str) -> str:
    if not raw_html:
        return ""
    return property_data_to_text(parse_property_data(raw_html, url))


def resolve_listing_text(result: ScrapeResult, url: str) -> str:
    """
    First non-empty rendering: provider markdown, main-content text, whole
    processed page, then heuristic field extraction. "" when nothing is usable.
    """
    if result.markdown and result.markdown.strip():
        return result.markdown

    raw_html = result.html or ""
    for name, extractor in (
        ("main_content", main_content_text),
        ("processed_page", processed_page_text),
        ("heuristic", heuristic_text),
    ):
        text = extractor(raw_html, url)
        if text and text.strip():
            logger.info("Listing text recovered via %s fallback (%d chars)", name, len(text))
            return text
    return ""


def append_embedded_data(text: str, raw_html: Optional[str]) -> str:
    """Add the page's JSON-LD blocks, rendered as text, to the model input."""
    if not raw_html:
        return text
    json_ld = extract_structured_data(raw_html)["json_ld"]
    if not json_ld:
        return text
    rendered = format_structured_json_to_text(json_ld)
    if not rendered.strip():
        return text
    return f"{text}\n\n## Embedded Structured Data\n\n{rendered}"
