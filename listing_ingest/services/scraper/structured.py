"""
Structured-data scrapers - Apify actors that return parsed listing JSON.

A structured scraper is authoritative for its domain: when one matches a URL
and fails, the error propagates instead of falling back to generic HTML.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from listing_ingest.errors import ConfigurationError, ScrapeError, ScrapeTimeoutError
from listing_ingest.services.scraper.json_cleaners import get_json_cleaner

logger = logging.getLogger(__name__)

APIFY_BASE_URL = "https://api.apify.com/v2"
APIFY_POLL_INTERVAL_SECONDS = 5
APIFY_TERMINAL_STATUSES = frozenset({"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"})


@dataclass(frozen=True)
class StructuredScraper:
    id: str
    name: str
    actor_id: str
    domains: tuple[str, ...]
    build_input: Callable[[str], dict]

    def handles(self, url: str) -> bool:
        try:
            hostname = (urlparse(url).hostname or "").lower()
        except ValueError:
            return False
        return hostname in self.domains

    def clean(self, data: Any) -> Any:
        cleaner = get_json_cleaner(self.id)
        return cleaner(data) if cleaner else data


STRUCTURED_SCRAPERS = (
    StructuredScraper(
        id="zillow",
        name="Zillow Detail Scraper",
        actor_id="maxcopell~zillow-detail-scraper",
        domains=("zillow.com", "www.zillow.com"),
        build_input=lambda url: {"startUrls": [{"url": url}]},
    ),
)


def find_structured_scraper(url: str) -> Optional[StructuredScraper]:
    for scraper in STRUCTURED_SCRAPERS:
        if scraper.handles(url):
            return scraper
    return None


def find_structured_scraper_by_id(scraper_id: str) -> Optional[StructuredScraper]:
    return next((s for s in STRUCTURED_SCRAPERS if s.id == scraper_id), None)


async def run_actor(scraper: StructuredScraper, url: str, timeout_ms: int) -> dict:
    """
    Start an actor run, poll until it finishes, then fetch its dataset.

    Returns:
        {"data": [...items], "scraper_id": str, "actor_id": str, "duration_ms": int}
    """
    from listing_ingest.config import get_settings
    token = get_settings().apify_api_token
    if not token:
        raise ConfigurationError("APIFY_API_TOKEN is not configured")

    start = time.monotonic()
    max_polls = max(1, timeout_ms // (APIFY_POLL_INTERVAL_SECONDS * 1000))
    params = {"token": token}

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as client:
            response = await client.post(
                f"{APIFY_BASE_URL}/acts/{scraper.actor_id}/runs",
                params=params,
                json=scraper.build_input(url),
            )
            if response.status_code >= 400:
                raise ScrapeError(
                    f"Apify API error: {response.status_code} - {response.text[:200]}",
                    provider="apify",
                )

            run = response.json()["data"]
            run_id = run["id"]
            dataset_id = run["defaultDatasetId"]
            status = run.get("status")
            logger.info("Apify run %s started for %s (%s)", run_id, url, scraper.id)

            polls = 0
            while status not in APIFY_TERMINAL_STATUSES:
                if polls >= max_polls:
                    raise ScrapeTimeoutError(
                        f"Apify run timeout after {timeout_ms // 1000} seconds", provider="apify",
                    )
                await asyncio.sleep(APIFY_POLL_INTERVAL_SECONDS)
                polls += 1
                status_response = await client.get(
                    f"{APIFY_BASE_URL}/acts/{scraper.actor_id}/runs/{run_id}", params=params,
                )
                if status_response.status_code >= 400:
                    raise ScrapeError(
                        f"Failed to check run status: {status_response.status_code}", provider="apify",
                    )
                status = status_response.json()["data"]["status"]

            if status != "SUCCEEDED":
                raise ScrapeError(f"Apify run {status.lower()}: {run_id}", provider="apify")

            dataset_response = await client.get(
                f"{APIFY_BASE_URL}/datasets/{dataset_id}/items", params=params,
            )
            if dataset_response.status_code >= 400:
                raise ScrapeError(
                    f"Failed to fetch dataset: {dataset_response.status_code}", provider="apify",
                )
            items = dataset_response.json()
    except httpx.TimeoutException as e:
        raise ScrapeTimeoutError(f"Apify request timed out: {e}", provider="apify") from e
    except httpx.HTTPError as e:
        raise ScrapeError(f"Apify error: {e}", provider="apify") from e
    except (KeyError, TypeError, ValueError) as e:
        raise ScrapeError(f"Apify returned an unexpected payload: {e}", provider="apify") from e

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Apify run %s finished: %d items (%dms)", run_id, len(items) if isinstance(items, list) else 1,
        duration_ms, extra={"provider": "apify", "duration_ms": duration_ms},
    )
    return {
        "data": items,
        "scraper_id": scraper.id,
        "actor_id": scraper.actor_id,
        "duration_ms": duration_ms,
    }
