"""
Expired preview cleanup.
Previews live PREVIEW_TTL_HOURS; after that the row and its temp-preview/<id>/
images are removed. Blobs go first so a storage failure leaves the row behind
for the next pass.
"""
import logging
from datetime import datetime
from typing import Optional

from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.utils.url_safety import TEMP_PREVIEW_PREFIX

logger = logging.getLogger(__name__)


async def cleanup_expired_previews(
    store: Optional[PreviewStore] = None,
    limit: int = 100,
    now: Optional[datetime] = None,
) -> dict:
    """
    Delete up to `limit` expired previews and their stored images.

    Returns:
        {"previews_deleted": int, "images_deleted": int, "failed": int}
    """
    from listing_ingest.services import storage

    store = store or PreviewStore()
    expired = await store.expired_ids(now=now, limit=limit)
    summary = {"previews_deleted": 0, "images_deleted": 0, "failed": 0}
    if not expired:
        return summary

    # Nothing can have been uploaded without credentials
    delete_blobs = storage.is_configured()
    if not delete_blobs:
        logger.debug("Storage not configured, removing expired rows only")

    removable = []
    for preview_id in expired:
        if delete_blobs:
            try:
                summary["images_deleted"] += await storage.delete_prefix(f"{TEMP_PREVIEW_PREFIX}/{preview_id}")
            except Exception as e:
                summary["failed"] += 1
                logger.warning(
                    "Image cleanup failed for preview %s: %s", preview_id, str(e),
                    extra={"job_id": str(preview_id)},
                )
                continue
        removable.append(preview_id)

    summary["previews_deleted"] = await store.delete(removable)
    logger.info(
        "Cleaned up %d expired preview(s), %d image(s), %d failure(s)",
        summary["previews_deleted"], summary["images_deleted"], summary["failed"],
    )
    return summary
