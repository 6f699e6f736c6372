"""
Generic HTML scraper backends.

Every backend has the same call shape:
    await backend(url, timeout_ms, actions=None, stealth=False) -> ScrapeResult
and raises ConfigurationError / ScrapeError / ScrapeTimeoutError. Empty pages are
returned as-is; the caller decides what counts as sufficient content.
"""
import logging
import time
from typing import Optional

import httpx
from curl_cffi.requests import AsyncSession

from listing_ingest.errors import ConfigurationError, ScrapeError, ScrapeTimeoutError
from listing_ingest.schemas.pipeline import ScrapeResult
from listing_ingest.services.scraper.html_cleaner import clean_html
from listing_ingest.services.scraper.text import extract_structured_text
from listing_ingest.utils.url_safety import is_safe_url

logger = logging.getLogger(__name__)

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v2/scrape"
SCRAPERAPI_URL = "https://api.scraperapi.com/"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Backends able to run browser actions and return several DOM snapshots
ACTION_CAPABLE_BACKENDS = frozenset({"firecrawl"})


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def html_to_markdown(html: Optional[str]) -> str:
    if not html:
        return ""
    return extract_structured_text(clean_html(html))


async def firecrawl_scrape(
    url: str,
    timeout_ms: int,
    actions: Optional[list[dict]] = None,
    stealth: bool = False,
) -> ScrapeResult:
    """
    Firecrawl v2 scrape. With actions, each {"type": "scrape"} step returns a
    DOM snapshot: the first is the listing page, the last the opened gallery.
    """
    from listing_ingest.config import get_settings
    api_key = get_settings().firecrawl_api_key
    if not api_key:
        raise ConfigurationError("FIRECRAWL_API_KEY is not configured")

    provider = "firecrawl_stealth" if stealth else "firecrawl"
    payload = {
        "url": url,
        "formats": ["markdown", "rawHtml"],
        "onlyMainContent": False,
        "blockAds": True,
        "timeout": timeout_ms,
        "proxy": "stealth" if stealth else "basic",
    }
    if actions:
        payload["actions"] = actions

    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_ms / 1000 + 10)) as client:
            response = await client.post(
                FIRECRAWL_SCRAPE_URL,
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                json=payload,
            )
    except httpx.TimeoutException as e:
        raise ScrapeTimeoutError(f"Firecrawl timeout after {timeout_ms // 1000} seconds", provider) from e
    except httpx.HTTPError as e:
        raise ScrapeError(f"Firecrawl request failed: {e}", provider) from e

    if response.status_code == 408:
        raise ScrapeTimeoutError(f"Firecrawl timeout after {timeout_ms // 1000} seconds", provider)
    if response.status_code != 200:
        raise ScrapeError(f"Firecrawl API error: {response.status_code} {response.text[:200]}", provider)

    try:
        body = response.json()
    except ValueError as e:
        raise ScrapeError("Firecrawl returned invalid JSON", provider) from e
    if not body.get("success"):
        raise ScrapeError(f"Firecrawl failed: {body.get('error', 'Unknown')}", provider)

    data = body.get("data") or {}
    raw_html = data.get("rawHtml") or data.get("html") or ""
    markdown = data.get("markdown") or ""

    snapshots = [
        s.get("html") for s in ((data.get("actions") or {}).get("scrapes") or [])
        if isinstance(s, dict) and s.get("html")
    ]
    main_html = snapshots[0] if snapshots else raw_html
    gallery_html = snapshots[-1] if len(snapshots) >= 2 else None

    duration_ms = _elapsed_ms(start)
    logger.info(
        "Firecrawl scraped %s: html=%d markdown=%d snapshots=%d (%dms)",
        url, len(main_html), len(markdown), len(snapshots), duration_ms,
        extra={"provider": provider, "duration_ms": duration_ms},
    )
    return ScrapeResult(
        html=main_html,
        markdown=markdown,
        provider="firecrawl",
        duration_ms=duration_ms,
        gallery_html=gallery_html,
        gallery_markdown=html_to_markdown(gallery_html) if gallery_html else None,
    )


async def scraperapi_scrape(
    url: str,
    timeout_ms: int,
    actions: Optional[list[dict]] = None,
    stealth: bool = False,
) -> ScrapeResult:
    """ScraperAPI proxy fetch. Stealth mode switches to premium residential proxies."""
    from listing_ingest.config import get_settings
    api_key = get_settings().scraperapi_key
    if not api_key:
        raise ConfigurationError("SCRAPERAPI_KEY is not configured")

    provider = "scraperapi_stealth" if stealth else "scraperapi"
    params = {"api_key": api_key, "url": url}
    if stealth:
        params["premium"] = "true"

    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_ms / 1000)) as client:
            response = await client.get(SCRAPERAPI_URL, params=params)
    except httpx.TimeoutException as e:
        raise ScrapeTimeoutError(f"ScraperAPI timeout after {timeout_ms // 1000} seconds", provider) from e
    except httpx.HTTPError as e:
        raise ScrapeError(f"ScraperAPI request failed: {e}", provider) from e

    if response.status_code != 200:
        raise ScrapeError(f"ScraperAPI error: {response.status_code}", provider)

    html = response.text
    duration_ms = _elapsed_ms(start)
    logger.info(
        "ScraperAPI scraped %s: html=%d (%dms)", url, len(html), duration_ms,
        extra={"provider": provider, "duration_ms": duration_ms},
    )
    return ScrapeResult(
        html=html,
        markdown=html_to_markdown(html),
        provider="scraperapi",
        duration_ms=duration_ms,
    )


async def direct_scrape(
    url: str,
    timeout_ms: int,
    actions: Optional[list[dict]] = None,
    stealth: bool = False,
) -> ScrapeResult:
    """
    Fetch the page ourselves. Basic mode uses httpx; stealth mode uses curl_cffi
    with Chrome TLS fingerprinting.
    """
    provider = "direct_stealth" if stealth else "direct"
    if not await is_safe_url(url):
        raise ScrapeError(f"Refusing to fetch unsafe URL: {url}", provider)

    timeout = timeout_ms / 1000
    start = time.monotonic()
    if stealth:
        try:
            async with AsyncSession(impersonate="chrome") as session:
                response = await session.get(url, timeout=timeout, allow_redirects=True)
        except Exception as e:
            if "timed out" in str(e).lower() or "timeout" in str(e).lower():
                raise ScrapeTimeoutError(f"Direct fetch timeout after {int(timeout)} seconds", provider) from e
            raise ScrapeError(f"Direct fetch failed: {e}", provider) from e
        status_code, html = response.status_code, response.text
    else:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout), follow_redirects=True, headers=BROWSER_HEADERS,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise ScrapeTimeoutError(f"Direct fetch timeout after {int(timeout)} seconds", provider) from e
        except httpx.HTTPError as e:
            raise ScrapeError(f"Direct fetch failed: {e}", provider) from e
        status_code, html = response.status_code, response.text

    if status_code in (403, 429, 503):
        raise ScrapeError(f"Direct fetch blocked: HTTP {status_code}", provider)
    if status_code != 200:
        raise ScrapeError(f"Direct fetch error: HTTP {status_code}", provider)

    duration_ms = _elapsed_ms(start)
    logger.info(
        "Direct fetch %s: html=%d (%dms)", url, len(html), duration_ms,
        extra={"provider": provider, "duration_ms": duration_ms},
    )
    return ScrapeResult(
        html=html,
        markdown=html_to_markdown(html),
        provider="direct",
        duration_ms=duration_ms,
    )


GENERIC_BACKENDS = {
    "firecrawl": firecrawl_scrape,
    "scraperapi": scraperapi_scrape,
    "direct": direct_scrape,
}
