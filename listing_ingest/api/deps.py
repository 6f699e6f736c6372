"""
Shared FastAPI dependencies for the queue and preview routes.
"""
from listing_ingest.services.continuation import HttpSelfTrigger
from listing_ingest.services.preview_store import PreviewStore
from listing_ingest.services.scrape_queue import ScrapeQueue

_continuation = None


async def get_queue() -> ScrapeQueue:
    from listing_ingest.config import get_settings
    from listing_ingest.utils.redis_client import get_redis
    return ScrapeQueue.from_settings(await get_redis(), get_settings())


def get_continuation() -> HttpSelfTrigger:
    global _continuation
    if _continuation is None:
        _continuation = HttpSelfTrigger.from_settings()
    return _continuation


def get_preview_store() -> PreviewStore:
    return PreviewStore()
