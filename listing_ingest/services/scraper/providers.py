"""
Scrape routing - structured scrapers first, then the generic provider chain.

The generic chain is an ordered list of (provider_name, invoke) pairs sharing
one deadline: the configured backend in basic mode, then one stealth retry.
Blocked bodies and backend failures both move on to the next attempt.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from listing_ingest.errors import (
    BlockedContentError,
    ConfigurationError,
    ScrapeError,
    ScrapeTimeoutError,
)
from listing_ingest.schemas.pipeline import ScrapeResult
from listing_ingest.services.scraper.actions import get_combined_actions, get_main_actions
from listing_ingest.services.scraper.backends import ACTION_CAPABLE_BACKENDS, GENERIC_BACKENDS
from listing_ingest.services.scraper.block_detection import BlockDetector, default_detector
from listing_ingest.services.scraper.html_cleaner import extract_text
from listing_ingest.services.scraper.html_processors import extract_gallery_for_url
from listing_ingest.services.scraper.structured import find_structured_scraper, run_actor

logger = logging.getLogger(__name__)

DEFAULT_SCRAPE_TIMEOUT_MS = 170_000

ProviderChain = list[tuple[str, Callable[[], Awaitable[ScrapeResult]]]]


def build_generic_chain(url: str, backend_name: str, timeout_ms: int) -> ProviderChain:
    """Basic attempt plus stealth retry for one backend."""
    backend = GENERIC_BACKENDS.get(backend_name)
    if backend is None:
        raise ConfigurationError(f"Unknown generic scraper provider: {backend_name}")

    actions = None
    if backend_name in ACTION_CAPABLE_BACKENDS:
        actions = get_combined_actions(url) or get_main_actions(url)

    return [
        (backend_name, lambda: backend(url, timeout_ms, actions=actions, stealth=False)),
        (f"{backend_name}_stealth", lambda: backend(url, timeout_ms, actions=actions, stealth=True)),
    ]


def _detection_body(result: ScrapeResult) -> str:
    # Markdown or visible text, never raw markup: captcha script tags are common on real listings
    if result.markdown:
        return result.markdown
    return extract_text(result.html or "")


def _has_content(result: ScrapeResult) -> bool:
    return bool((result.markdown or "").strip() or (result.html or "").strip())


async def try_providers(
    chain: ProviderChain,
    timeout_ms: int,
    detector: BlockDetector = default_detector,
) -> ScrapeResult:
    """
    Run the chain in order until one attempt returns an unblocked page.

    Empty pages are kept as a last resort and returned if nothing better comes
    back, so the caller's sufficiency check can report them. Raises the last
    error when every attempt fails.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    last_error: Optional[ScrapeError] = None
    empty_result: Optional[ScrapeResult] = None

    for name, invoke in chain:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            last_error = ScrapeTimeoutError(
                f"Scrape timeout after {timeout_ms // 1000} seconds", provider=name,
            )
            break

        try:
            result = await asyncio.wait_for(invoke(), timeout=remaining)
        except asyncio.TimeoutError:
            last_error = ScrapeTimeoutError(
                f"Scrape timeout after {timeout_ms // 1000} seconds", provider=name,
            )
            logger.warning("Provider %s timed out", name, extra={"provider": name})
            continue
        except ConfigurationError:
            raise
        except ScrapeError as e:
            last_error = e
            logger.warning("Provider %s failed: %s", name, str(e), extra={"provider": name})
            continue

        marker = detector.detect(_detection_body(result))
        if marker:
            last_error = BlockedContentError(
                f"Blocked content detected ({marker})", provider=name, marker=marker,
            )
            logger.warning("Provider %s returned a blocked page: %s", name, marker, extra={"provider": name})
            continue

        result.actual_provider = name
        if not _has_content(result):
            empty_result = result
            logger.info("Provider %s returned an empty page", name, extra={"provider": name})
            continue
        return result

    if empty_result is not None:
        return empty_result
    if last_error is None:
        raise ScrapeError("No scrape providers configured")
    raise last_error


async def _scrape_structured(scraper, url: str, timeout_ms: int) -> ScrapeResult:
    try:
        run = await asyncio.wait_for(run_actor(scraper, url, timeout_ms), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise ScrapeTimeoutError(
            f"Scrape timeout after {timeout_ms // 1000} seconds", provider="apify",
        ) from e

    return ScrapeResult(
        data=scraper.clean(run["data"]),
        provider="apify",
        duration_ms=run["duration_ms"],
        structured_scraper_id=scraper.id,
        actual_provider=f"apify:{scraper.id}",
    )


async def scrape_url(
    url: str,
    timeout_ms: int = DEFAULT_SCRAPE_TIMEOUT_MS,
    detector: Optional[BlockDetector] = None,
    generic_provider: Optional[str] = None,
) -> ScrapeResult:
    """
    Scrape a listing URL.

    Args:
        url: Listing URL.
        timeout_ms: Budget for the whole call, retries included.
        detector: Blocked-page detector; the keyword detector by default.
        generic_provider: Overrides the configured generic backend.

    Raises:
        ScrapeTimeoutError, ScrapeError, ConfigurationError
    """
    start = time.monotonic()

    structured = find_structured_scraper(url)
    if structured is not None:
        logger.info("Using structured scraper %s for %s", structured.id, url, extra={"url": url})
        return await _scrape_structured(structured, url, timeout_ms)

    if generic_provider is None:
        from listing_ingest.config import get_settings
        generic_provider = get_settings().generic_scraper_provider

    chain = build_generic_chain(url, generic_provider, timeout_ms)
    result = await try_providers(chain, timeout_ms, detector or default_detector)

    if result.gallery_html:
        result.gallery_images = extract_gallery_for_url(url, result.gallery_html)

    result.duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Scraped %s via %s (%dms, gallery=%d)",
        url, result.actual_provider, result.duration_ms, len(result.gallery_images),
        extra={"url": url, "provider": result.actual_provider, "duration_ms": result.duration_ms},
    )
    return result
