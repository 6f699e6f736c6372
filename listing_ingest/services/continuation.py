"""
Self-trigger for the scrape queue.

After a cycle frees its slot the worker asks its continuation to start another
cycle. In production that is an HTTP POST back to our own process-scrape
endpoint, sent fire-and-forget so the current job never waits on it.
"""
import asyncio
import logging
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

PROCESS_SCRAPE_PATH = "/api/queue/process-scrape"
TRIGGER_TIMEOUT_SECONDS = 10.0


class Continuation(Protocol):
    def schedule_next_cycle(self) -> None:
        ...


class HttpSelfTrigger:
    def __init__(self, base_url: str, token: str, timeout: float = TRIGGER_TIMEOUT_SECONDS):
        self.url = base_url.rstrip("/") + PROCESS_SCRAPE_PATH
        self.token = token
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings=None) -> "HttpSelfTrigger":
        if settings is None:
            from listing_ingest.config import get_settings
            settings = get_settings()
        return cls(settings.app_base_url, settings.internal_api_token)

    def schedule_next_cycle(self) -> None:
        """Start the POST in the background and return immediately."""
        task = asyncio.get_running_loop().create_task(self._post())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(self) -> Optional[int]:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.post(
                    self.url,
                    headers={"x-internal-token": self.token, "Content-Type": "application/json"},
                    json={},
                )
            logger.debug("Self-trigger returned %d", response.status_code)
            return response.status_code
        except Exception as e:
            logger.warning("Failed to trigger next scrape cycle: %s", str(e))
            return None
