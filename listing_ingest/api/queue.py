"""
Scrape queue endpoints.

- POST /api/queue/process-scrape - run one cycle (or a batch); self-trigger and cron target
- GET  /api/queue/process-scrape - queue stats
- GET  /api/queue/status/{id}    - status of one preview job
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from listing_ingest.api.deps import get_continuation, get_preview_store, get_queue
from listing_ingest.schemas.queue import JobStatusResponse, ProcessScrapeRequest
from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.services.scrape_queue import ScrapeQueue
from listing_ingest.workers.scrape_worker import NO_JOBS_MESSAGE, process_batch, process_next_job

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/queue", tags=["queue"])


def is_authorized(internal_token: Optional[str], cron_header: Optional[str]) -> bool:
    """Internal token, scheduler header, or any caller outside production."""
    from listing_ingest.config import get_settings
    settings = get_settings()

    if internal_token and settings.internal_api_token and hmac.compare_digest(
        internal_token, settings.internal_api_token,
    ):
        return True
    if cron_header == "1":
        return True
    return settings.app_env != "production"


@router.post("/process-scrape")
async def process_scrape(
    body: Optional[ProcessScrapeRequest] = None,
    x_internal_token: Optional[str] = Header(default=None),
    x_cron: Optional[str] = Header(default=None),
    queue: ScrapeQueue = Depends(get_queue),
    continuation=Depends(get_continuation),
    store: PreviewStore = Depends(get_preview_store),
):
    """Run the scrape worker once, or for a batch of jobs."""
    if not is_authorized(x_internal_token, x_cron):
        raise HTTPException(status_code=401, detail="Unauthorized")

    body = body or ProcessScrapeRequest()
    cron = body.cron or x_cron == "1"

    if cron:
        stats = await queue.get_stats()
        if stats.queue_length == 0:
            return {"success": True, "message": "Queue is empty, nothing to process", "stats": stats.model_dump()}
        if stats.processing_count > 0:
            return {
                "success": True,
                "message": f"Job already processing ({stats.processing_count}), skipping",
                "stats": stats.model_dump(),
            }

    if body.batch > 1:
        processed = await process_batch(queue, continuation, max_jobs=body.batch, store=store)
        stats = await queue.get_stats()
        return {
            "success": True,
            "message": f"Processed {processed} job(s)",
            "processed": processed,
            "stats": stats.model_dump(),
        }

    result = await process_next_job(queue, continuation, store=store)
    if not result.success:
        if result.error == NO_JOBS_MESSAGE:
            raise HTTPException(status_code=404, detail=NO_JOBS_MESSAGE)
        raise HTTPException(status_code=500, detail=result.error or "Failed to process job")

    return {"success": True, "message": "Job processed successfully", "job_id": result.job_id}


@router.get("/process-scrape")
async def queue_stats(queue: ScrapeQueue = Depends(get_queue)):
    stats = await queue.get_stats()
    return {"success": True, "stats": stats.model_dump()}


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def job_status(
    job_id: str,
    queue: ScrapeQueue = Depends(get_queue),
    store: PreviewStore = Depends(get_preview_store),
):
    preview = await store.get(job_id)
    if preview is None:
        raise HTTPException(status_code=404, detail="Job not found")

    queue_position = None
    processing = False
    if preview.status == "queued":
        queue_position = await queue.get_job_position(job_id)
        processing = await queue.is_job_processing(job_id)

    return JobStatusResponse(
        status=preview.status,
        queue_position=queue_position,
        processing=processing,
        error_message=preview.error_message,
        created_at=preview.created_at,
    )
