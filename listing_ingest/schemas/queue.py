"""
Queue schemas - jobs stored in Redis and the request/response bodies of the queue API.
"""
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field


class ScrapeJob(BaseModel):
    """A queued scrape request. Identity is the preview record id."""
    id: str
    url: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    priority: Optional[int] = None
    attempts: int = Field(default=0, description="Times this job has been leased")
    lease_token: Optional[str] = Field(default=None, description="Token of the current lease, set by dequeue_next")


class QueueStats(BaseModel):
    queue_length: int = 0
    processing_count: int = 0
    completed_today: int = 0
    failed_today: int = 0
    total_queued: int = 0


class ProcessScrapeRequest(BaseModel):
    batch: int = Field(default=1, ge=1, le=20, description="Jobs to process in this call")
    cron: bool = Field(default=False, description="Scheduler invocation; skips when idle or busy")


class CycleResult(BaseModel):
    """Outcome of one dequeue-and-scrape cycle."""
    success: bool
    job_id: Optional[str] = None
    error: Optional[str] = None


class PreviewCreateRequest(BaseModel):
    url: str = Field(..., min_length=8, max_length=2048)


class PreviewCreateResponse(BaseModel):
    success: bool = True
    preview_id: str
    queue_position: int


class JobStatusResponse(BaseModel):
    success: bool = True
    status: str
    queue_position: Optional[int] = None
    processing: bool = False
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
