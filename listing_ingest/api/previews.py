"""
Preview endpoints - submit a listing URL and read the resulting record.
"""
import logging
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException

from listing_ingest.api.deps import get_continuation, get_preview_store, get_queue
from listing_ingest.schemas.queue import PreviewCreateRequest, PreviewCreateResponse, ScrapeJob
from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.services.scrape_queue import ScrapeQueue

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/previews", tags=["previews"])

PUBLIC_FIELDS = (
    "status", "error_message", "source_url", "source_domain",
    "gallery_image_urls", "generated_config", "unified_json", "image_analysis",
)


def _validate_listing_url(url: str) -> str:
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise HTTPException(status_code=400, detail="Invalid URL - must be an http(s) listing URL")
    return url


@router.post("", response_model=PreviewCreateResponse)
async def create_preview(
    payload: PreviewCreateRequest,
    queue: ScrapeQueue = Depends(get_queue),
    continuation=Depends(get_continuation),
    store: PreviewStore = Depends(get_preview_store),
):
    """Create a queued preview record, enqueue it and kick the worker."""
    url = _validate_listing_url(payload.url)

    preview = await store.create(url)
    preview_id = str(preview.id)
    position = await queue.enqueue(ScrapeJob(id=preview_id, url=url))

    try:
        continuation.schedule_next_cycle()
    except Exception as e:
        logger.warning("Failed to trigger scrape worker: %s", str(e))

    logger.info("Preview %s queued at position %d", preview_id, position, extra={"job_id": preview_id, "url": url})
    return PreviewCreateResponse(preview_id=preview_id, queue_position=position)


@router.get("/{preview_id}")
async def get_preview(
    preview_id: str,
    store: PreviewStore = Depends(get_preview_store),
):
    preview = await store.get(preview_id)
    if preview is None:
        raise HTTPException(status_code=404, detail="Preview not found")

    result = {"success": True, "id": str(preview.id)}
    for field in PUBLIC_FIELDS:
        result[field] = getattr(preview, field)
    result["created_at"] = preview.created_at.isoformat() if preview.created_at else None
    result["expires_at"] = preview.expires_at.isoformat() if preview.expires_at else None
    return result
