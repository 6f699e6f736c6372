"""
Scrape worker - one queue cycle: gate, dequeue, scrape, persist, free the slot,
trigger the next cycle, then run AI normalization outside the gate.

process_next_job is driven three ways: the process-scrape endpoint (self-trigger
chain and external cron), process_batch, and the in-process run_scrape_worker
backstop loop when SCRAPE_WORKER_ENABLED is set.
"""
import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from listing_ingest.errors import EmptyContentError
from listing_ingest.schemas.pipeline import ScrapeResult
from listing_ingest.schemas.queue import CycleResult
from listing_ingest.services.cleanup import cleanup_expired_previews
from listing_ingest.services.continuation import Continuation
from listing_ingest.services.normalization import generate_config_from_data
from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.services.scrape_queue import ScrapeQueue
from listing_ingest.services.scraper.content import (
    UNSCRAPABLE_MESSAGE,
    append_embedded_data,
    resolve_listing_text,
)
from listing_ingest.services.scraper.providers import scrape_url
from listing_ingest.services.scraper.text import extract_structured_text, format_structured_json_to_text

logger = logging.getLogger(__name__)

NO_JOBS_MESSAGE = "No jobs in queue"
HEARTBEAT_KEY = "listing_ingest:worker_health:scrape_queue"


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from listing_ingest.utils.redis_client import get_redis
        redis = await get_redis()
        await redis.set(HEARTBEAT_KEY, datetime.now(timezone.utc).isoformat(), ex=7200)
    except Exception as e:
        logger.debug("Heartbeat failed: %s", str(e))


def build_scrape_fields(result: ScrapeResult, url: str) -> tuple[dict, object]:
    """
    Record columns for a finished scrape plus the payload for call 1.
    Raises EmptyContentError (after filling the columns) when nothing is usable.
    """
    if result.is_structured:
        data = result.data
        fields = {
            "default_raw_html": json.dumps(data, indent=2, ensure_ascii=False),
            "default_markdown": format_structured_json_to_text(data),
            "gallery_raw_html": None,
            "gallery_markdown": None,
            "gallery_image_urls": result.gallery_images,
            "scraped_data": {
                "provider": result.provider,
                "structuredScraperId": result.structured_scraper_id,
                "data": data,
            },
            "source_domain": f"structured_{result.structured_scraper_id}",
        }
        if not data:
            raise EmptyContentError(UNSCRAPABLE_MESSAGE, fields)
        return fields, data

    listing_text = resolve_listing_text(result, url)
    gallery_markdown = result.gallery_markdown
    if not gallery_markdown and result.gallery_html:
        gallery_markdown = extract_structured_text(result.gallery_html)

    fields = {
        "default_raw_html": result.html or None,
        "default_markdown": listing_text or None,
        "gallery_raw_html": result.gallery_html,
        "gallery_markdown": gallery_markdown,
        "gallery_image_urls": result.gallery_images,
        "source_domain": result.provider or "unknown",
    }
    if not listing_text.strip():
        raise EmptyContentError(UNSCRAPABLE_MESSAGE, fields)
    return fields, append_embedded_data(listing_text, result.html)


async def _safe_update(store: PreviewStore, job_id: str, **fields) -> None:
    try:
        await store.update(job_id, **fields)
    except Exception as e:
        logger.error("Failed to update preview %s: %s", job_id, str(e), extra={"job_id": job_id}, exc_info=True)


async def _maybe_continue(queue: ScrapeQueue, continuation: Continuation, max_concurrent: int) -> None:
    """Schedule another cycle when work is waiting and a slot is free."""
    try:
        queue_length = await queue.queue_length()
        processing = await queue.count_processing()
        if queue_length > 0 and processing < max_concurrent:
            logger.info(
                "%d job(s) remaining, %d/%d processing, triggering next cycle",
                queue_length, processing, max_concurrent,
            )
            continuation.schedule_next_cycle()
        elif queue_length > 0:
            logger.info(
                "%d job(s) waiting but at concurrent limit (%d/%d)",
                queue_length, processing, max_concurrent,
            )
    except Exception as e:
        logger.warning("Error checking queue for self-trigger: %s", str(e))


async def process_next_job(
    queue: ScrapeQueue,
    continuation: Continuation,
    store: Optional[PreviewStore] = None,
    max_concurrent: Optional[int] = None,
) -> CycleResult:
    """Run one queue cycle. Never raises for job-level failures."""
    from listing_ingest.config import get_settings
    settings = get_settings()
    max_concurrent = max_concurrent or settings.max_concurrent_scrapes
    store = store or PreviewStore()

    processing = await queue.count_processing()
    if processing >= max_concurrent:
        logger.info("At concurrent limit (%d/%d), skipping", processing, max_concurrent)
        return CycleResult(success=False, error=f"At concurrent limit ({processing}/{max_concurrent})")

    job = await queue.dequeue_next()
    if job is None:
        return CycleResult(success=False, error=NO_JOBS_MESSAGE)

    log_extra = {"job_id": job.id, "url": job.url}
    try:
        logger.info("Starting scrape for job %s", job.id, extra=log_extra)
        await store.update(job.id, status="scraping")

        result = await scrape_url(job.url, settings.scrape_timeout_ms)
        fields, payload = build_scrape_fields(result, job.url)

        await store.update(job.id, **fields, status="pending")
        await queue.complete_job(job.id, True, job.lease_token)
        logger.info(
            "Scraping completed for job %s via %s, queue slot freed", job.id, result.actual_provider,
            extra={**log_extra, "provider": result.actual_provider, "duration_ms": result.duration_ms},
        )
    except EmptyContentError as e:
        logger.error("No content extracted for job %s", job.id, extra={**log_extra, "error_code": "empty_content"})
        await _safe_update(store, job.id, **e.fields, status="error", error_message=UNSCRAPABLE_MESSAGE)
        await queue.complete_job(job.id, False, job.lease_token)
        await _maybe_continue(queue, continuation, max_concurrent)
        return CycleResult(success=False, job_id=job.id, error="No content extracted from scraped page")
    except Exception as e:
        logger.error("Job %s failed: %s", job.id, str(e), extra=log_extra, exc_info=True)
        await _safe_update(store, job.id, status="error", error_message=str(e) or "Failed to scrape URL")
        await queue.complete_job(job.id, False, job.lease_token)
        await _maybe_continue(queue, continuation, max_concurrent)
        return CycleResult(success=False, job_id=job.id, error=str(e) or type(e).__name__)

    await _maybe_continue(queue, continuation, max_concurrent)

    try:
        await generate_config_from_data(store, job.id, payload, is_structured=result.is_structured)
    except Exception as e:
        logger.error("AI processing failed for job %s: %s", job.id, str(e), extra=log_extra)
        # Scraping succeeded, keep the scraped content usable
        await _safe_update(store, job.id, status="completed", error_message=f"AI processing failed: {e}")

    return CycleResult(success=True, job_id=job.id)


async def process_batch(
    queue: ScrapeQueue,
    continuation: Continuation,
    max_jobs: int = 5,
    store: Optional[PreviewStore] = None,
    max_concurrent: Optional[int] = None,
) -> int:
    """Run up to max_jobs cycles sequentially. Returns how many ran."""
    processed = 0
    for _ in range(max_jobs):
        result = await process_next_job(queue, continuation, store=store, max_concurrent=max_concurrent)
        if not result.success and result.error == NO_JOBS_MESSAGE:
            break
        if not result.success and result.job_id is None:
            # Concurrency gate; nothing will change within this batch
            break
        processed += 1
    return processed


async def _maybe_cleanup(last_run: Optional[float], settings, store: Optional[PreviewStore] = None) -> Optional[float]:
    """
    Run expired-preview cleanup when its interval has elapsed.
    Returns the monotonic time of the last run (unchanged when skipped).
    """
    interval = settings.preview_cleanup_interval_seconds
    if interval <= 0:
        return last_run
    now = time.monotonic()
    if last_run is not None and now - last_run < interval:
        return last_run
    try:
        await cleanup_expired_previews(store=store, limit=settings.preview_cleanup_batch_size)
    except Exception as e:
        logger.error("Preview cleanup error: %s", str(e), exc_info=True)
    return now


async def run_scrape_worker():
    """
    Backstop loop - drains the queue on an interval in case a self-trigger was lost,
    and removes expired previews every PREVIEW_CLEANUP_INTERVAL_SECONDS.
    """
    from listing_ingest.config import get_settings
    from listing_ingest.services.continuation import HttpSelfTrigger
    from listing_ingest.utils.redis_client import get_redis

    settings = get_settings()
    interval = settings.scrape_worker_poll_seconds
    continuation = HttpSelfTrigger.from_settings(settings)
    logger.info("Scrape queue worker started (poll every %ds)", interval)
    last_cleanup = None

    while True:
        try:
            redis = await get_redis()
            queue = ScrapeQueue.from_settings(redis, settings)
            processed = await process_batch(queue, continuation, max_jobs=settings.scrape_batch_size)
            if processed:
                logger.info("Scrape worker processed %d job(s)", processed)
        except Exception as e:
            logger.error("Scrape worker cycle error: %s", str(e), exc_info=True)

        last_cleanup = await _maybe_cleanup(last_cleanup, settings)
        await _heartbeat()
        await asyncio.sleep(interval)
