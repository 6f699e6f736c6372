"""
Tests for the queue, preview and health endpoints.
Handlers are called directly with explicit dependencies.
"""
import uuid
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import HTTPException

from listing_ingest.api.health import health_check, readiness_check
from listing_ingest.api.previews import create_preview, get_preview
from listing_ingest.api.queue import is_authorized, job_status, process_scrape, queue_stats
from listing_ingest.schemas.queue import CycleResult, PreviewCreateRequest, ProcessScrapeRequest, ScrapeJob
from listing_ingest.services.scrape_queue import ScrapeQueue
from listing_ingest.workers.scrape_worker import HEARTBEAT_KEY

LISTING_URL = "https://listings.example.com/home/12-oak-ln"


@pytest.fixture
def queue(fake_redis):
    return ScrapeQueue(fake_redis)


@pytest.fixture
def continuation():
    return MagicMock()


async def _call_process(queue, continuation, store, body=None, token=None, cron=None):
    return await process_scrape(
        body=body,
        x_internal_token=token,
        x_cron=cron,
        queue=queue,
        continuation=continuation,
        store=store,
    )


# ---------------------------------------------------------------------------
# POST /api/queue/process-scrape
# ---------------------------------------------------------------------------


class TestAuthorization:
    def test_any_caller_outside_production(self):
        assert is_authorized(None, None) is True

    def test_production_requires_token_or_cron(self, settings):
        settings.app_env = "production"
        assert is_authorized("test-internal-token", None) is True
        assert is_authorized(None, "1") is True
        assert is_authorized("wrong-token", None) is False
        assert is_authorized(None, None) is False

    def test_empty_configured_token_never_matches(self, settings):
        settings.app_env = "production"
        settings.internal_api_token = ""
        assert is_authorized("", None) is False

    async def test_endpoint_rejects_unauthorized(self, settings, queue, continuation, store):
        settings.app_env = "production"
        with pytest.raises(HTTPException) as exc_info:
            await _call_process(queue, continuation, store, token="wrong-token")
        assert exc_info.value.status_code == 401


class TestProcessScrape:
    async def test_cron_skips_empty_queue(self, queue, continuation, store):
        with patch("listing_ingest.api.queue.process_next_job", new_callable=AsyncMock) as run:
            result = await _call_process(queue, continuation, store, cron="1")
        assert result["success"] is True
        assert result["message"] == "Queue is empty, nothing to process"
        run.assert_not_called()

    async def test_cron_skips_while_processing(self, queue, continuation, store):
        await queue.enqueue(ScrapeJob(id="job-1", url=LISTING_URL))
        await queue.enqueue(ScrapeJob(id="job-2", url=LISTING_URL))
        await queue.dequeue_next()

        with patch("listing_ingest.api.queue.process_next_job", new_callable=AsyncMock) as run:
            result = await _call_process(queue, continuation, store, body=ProcessScrapeRequest(cron=True))
        assert result["message"] == "Job already processing (1), skipping"
        assert result["stats"]["queue_length"] == 1
        run.assert_not_called()

    async def test_no_jobs_is_404(self, queue, continuation, store):
        with pytest.raises(HTTPException) as exc_info:
            await _call_process(queue, continuation, store)
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "No jobs in queue"

    async def test_gate_rejection_is_500(self, queue, continuation, store):
        with patch(
            "listing_ingest.api.queue.process_next_job",
            new_callable=AsyncMock, return_value=CycleResult(success=False, error="At concurrent limit (2/2)"),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await _call_process(queue, continuation, store)
        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "At concurrent limit (2/2)"

    async def test_single_job(self, queue, continuation, store):
        with patch(
            "listing_ingest.api.queue.process_next_job",
            new_callable=AsyncMock, return_value=CycleResult(success=True, job_id="job-1"),
        ) as run:
            result = await _call_process(queue, continuation, store, token="test-internal-token")
        assert result == {"success": True, "message": "Job processed successfully", "job_id": "job-1"}
        run.assert_awaited_once_with(queue, continuation, store=store)

    async def test_batch(self, queue, continuation, store):
        with patch("listing_ingest.api.queue.process_batch", new_callable=AsyncMock, return_value=3) as batch:
            result = await _call_process(queue, continuation, store, body=ProcessScrapeRequest(batch=5))
        assert result["processed"] == 3
        assert result["message"] == "Processed 3 job(s)"
        assert batch.call_args.kwargs["max_jobs"] == 5

    async def test_stats(self, queue):
        await queue.enqueue(ScrapeJob(id="job-1", url=LISTING_URL))
        result = await queue_stats(queue=queue)
        assert result["stats"]["queue_length"] == 1
        assert result["stats"]["total_queued"] == 1


# ---------------------------------------------------------------------------
# GET /api/queue/status/{id}
# ---------------------------------------------------------------------------


class TestJobStatus:
    async def test_queued_job_has_position(self, queue, store):
        await queue.enqueue(ScrapeJob(id="other", url=LISTING_URL))
        preview = await store.create(LISTING_URL)
        await queue.enqueue(ScrapeJob(id=str(preview.id), url=LISTING_URL))

        status = await job_status(str(preview.id), queue=queue, store=store)

        assert status.status == "queued"
        assert status.queue_position == 2
        assert status.processing is False
        assert isinstance(status.created_at, datetime)

    async def test_finished_job_has_no_position(self, queue, store):
        preview = await store.create(LISTING_URL)
        await store.update(preview.id, status="error", error_message="Scrape failed")

        status = await job_status(str(preview.id), queue=queue, store=store)

        assert status.status == "error"
        assert status.queue_position is None
        assert status.error_message == "Scrape failed"

    async def test_unknown_job(self, queue, store):
        with pytest.raises(HTTPException) as exc_info:
            await job_status(str(uuid.uuid4()), queue=queue, store=store)
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# /api/previews
# ---------------------------------------------------------------------------


class TestCreatePreview:
    async def test_creates_enqueues_and_triggers(self, queue, continuation, store):
        response = await create_preview(
            PreviewCreateRequest(url=f"  {LISTING_URL} "), queue=queue, continuation=continuation, store=store,
        )

        assert response.queue_position == 1
        record = await store.get(response.preview_id)
        assert record.status == "queued"
        assert record.source_url == LISTING_URL
        assert await queue.get_job_position(response.preview_id) == 1
        continuation.schedule_next_cycle.assert_called_once()

    async def test_trigger_failure_still_returns(self, queue, continuation, store):
        continuation.schedule_next_cycle.side_effect = RuntimeError("no running loop")
        response = await create_preview(
            PreviewCreateRequest(url=LISTING_URL), queue=queue, continuation=continuation, store=store,
        )
        assert response.success is True

    @pytest.mark.parametrize("url", ["ftp://listings.example.com/1", "not a url at all", "https:///path-only"])
    async def test_invalid_url(self, url, queue, continuation, store):
        with pytest.raises(HTTPException) as exc_info:
            await create_preview(PreviewCreateRequest(url=url), queue=queue, continuation=continuation, store=store)
        assert exc_info.value.status_code == 400
        assert await queue.queue_length() == 0


class TestGetPreview:
    async def test_returns_public_fields(self, store, sample_config):
        preview = await store.create(LISTING_URL)
        await store.update(preview.id, status="completed", unified_json=sample_config, source_domain="firecrawl")

        result = await get_preview(str(preview.id), store=store)

        assert result["id"] == str(preview.id)
        assert result["status"] == "completed"
        assert result["unified_json"]["beds"] == 3
        assert result["source_domain"] == "firecrawl"
        assert "default_raw_html" not in result
        assert datetime.fromisoformat(result["expires_at"]) > datetime.fromisoformat(result["created_at"])

    @pytest.mark.parametrize("preview_id", [str(uuid.uuid4()), "not-a-uuid"])
    async def test_not_found(self, preview_id, store):
        with pytest.raises(HTTPException) as exc_info:
            await get_preview(preview_id, store=store)
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_liveness(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "0.1.0"

    async def test_ready_with_heartbeat(self, db, fake_redis):
        await fake_redis.set(HEARTBEAT_KEY, "2026-01-01T00:00:00+00:00")
        result = await readiness_check(db=db)
        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True}
        assert result["scrape_worker_heartbeat"] == "2026-01-01T00:00:00+00:00"

    async def test_degraded_when_database_fails(self):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))
        result = await readiness_check(db=mock_db)
        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False
        assert result["checks"]["redis"] is True
