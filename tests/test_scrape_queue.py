"""
Scrape queue tests - FIFO order, processing leases, lease expiry and stats.
Runs against the in-memory FakeRedis from conftest.
"""
import pytest

from listing_ingest.schemas.queue import ScrapeJob
from listing_ingest.services.scrape_queue import (
    LEASES_KEY,
    QUEUE_KEY,
    ScrapeQueue,
)


def _job(n: int) -> ScrapeJob:
    return ScrapeJob(id=f"job-{n}", url=f"https://www.example.com/listing/{n}")


@pytest.fixture
def queue(fake_redis):
    return ScrapeQueue(fake_redis, lease_ttl_seconds=300, max_attempts=3)


class TestEnqueue:
    async def test_returns_one_indexed_position(self, queue):
        assert await queue.enqueue(_job(1)) == 1
        assert await queue.enqueue(_job(2)) == 2
        assert await queue.queue_length() == 2

    async def test_counts_total_queued(self, queue):
        await queue.enqueue(_job(1))
        await queue.enqueue(_job(2))
        stats = await queue.get_stats()
        assert stats.total_queued == 2


class TestDequeue:
    async def test_fifo_order(self, queue):
        for n in range(3):
            await queue.enqueue(_job(n))
        ids = [(await queue.dequeue_next()).id for _ in range(3)]
        assert ids == ["job-0", "job-1", "job-2"]

    async def test_empty_queue_returns_none(self, queue):
        assert await queue.dequeue_next() is None

    async def test_dequeue_creates_lease(self, queue):
        await queue.enqueue(_job(1))
        job = await queue.dequeue_next()
        assert job.attempts == 1
        assert job.lease_token
        assert await queue.is_job_processing("job-1") is True
        assert await queue.count_processing() == 1
        assert await queue.queue_length() == 0

    async def test_malformed_entry_is_skipped(self, queue, fake_redis):
        await fake_redis.rpush(QUEUE_KEY, "not-json")
        await queue.enqueue(_job(1))
        job = await queue.dequeue_next()
        assert job.id == "job-1"


class TestCompleteJob:
    async def test_success_releases_lease_and_counts(self, queue):
        await queue.enqueue(_job(1))
        job = await queue.dequeue_next()

        assert await queue.complete_job("job-1", True, job.lease_token) is True
        assert await queue.count_processing() == 0
        stats = await queue.get_stats()
        assert stats.completed_today == 1
        assert stats.failed_today == 0

    async def test_failure_counts_failed(self, queue):
        await queue.enqueue(_job(1))
        job = await queue.dequeue_next()

        await queue.complete_job("job-1", False, job.lease_token)
        stats = await queue.get_stats()
        assert stats.failed_today == 1

    async def test_unknown_job_counts_nothing(self, queue):
        assert await queue.complete_job("missing", True, "no-such-token") is False
        stats = await queue.get_stats()
        assert stats.completed_today == 0


class TestLeaseExpiry:
    async def test_expired_lease_is_requeued_at_head(self, queue, fake_redis):
        await queue.enqueue(_job(1))
        await queue.enqueue(_job(2))
        await queue.dequeue_next()

        fake_redis.advance(301)
        assert await queue.count_processing() == 0

        job = await queue.dequeue_next()
        assert job.id == "job-1"
        assert job.attempts == 2

    async def test_live_lease_is_not_reclaimed(self, queue, fake_redis):
        await queue.enqueue(_job(1))
        await queue.dequeue_next()

        fake_redis.advance(100)
        assert await queue.reclaim_expired_leases() == 0
        assert await queue.is_job_processing("job-1") is True

    async def test_job_abandoned_after_max_attempts(self, queue, fake_redis):
        await queue.enqueue(_job(1))
        for _ in range(3):
            job = await queue.dequeue_next()
            assert job.id == "job-1"
            fake_redis.advance(301)

        assert await queue.dequeue_next() is None
        stats = await queue.get_stats()
        assert stats.failed_today == 1
        assert await fake_redis.hgetall(LEASES_KEY) == {}

    async def test_completion_after_expiry_is_not_counted(self, queue, fake_redis):
        await queue.enqueue(_job(1))
        job = await queue.dequeue_next()
        fake_redis.advance(301)

        assert await queue.complete_job("job-1", True, job.lease_token) is False
        stats = await queue.get_stats()
        assert stats.completed_today == 0
        # the late completion still keeps the finished job from being rerun
        assert await queue.dequeue_next() is None

    async def test_stale_completion_leaves_new_lease_alone(self, queue, fake_redis):
        await queue.enqueue(_job(1))
        first = await queue.dequeue_next()
        fake_redis.advance(301)
        second = await queue.dequeue_next()
        assert second.id == "job-1"
        assert second.lease_token != first.lease_token

        assert await queue.complete_job("job-1", True, first.lease_token) is False
        assert await queue.count_processing() == 1
        assert await queue.is_job_processing("job-1") is True

        assert await queue.complete_job("job-1", True, second.lease_token) is True
        assert await queue.count_processing() == 0
        stats = await queue.get_stats()
        assert stats.completed_today == 1

    async def test_completion_without_token_is_ignored(self, queue):
        await queue.enqueue(_job(1))
        await queue.dequeue_next()

        assert await queue.complete_job("job-1", True, None) is False
        assert await queue.count_processing() == 1


class TestPositionAndStats:
    async def test_job_position(self, queue):
        for n in range(3):
            await queue.enqueue(_job(n))
        assert await queue.get_job_position("job-2") == 3
        assert await queue.get_job_position("job-9") is None

    async def test_stats_snapshot(self, queue):
        for n in range(3):
            await queue.enqueue(_job(n))
        await queue.dequeue_next()

        stats = await queue.get_stats()
        assert stats.queue_length == 2
        assert stats.processing_count == 1
        assert stats.total_queued == 3

    def test_from_settings(self, fake_redis, settings):
        settings.scrape_lease_ttl_seconds = 120
        settings.scrape_max_attempts = 5
        queue = ScrapeQueue.from_settings(fake_redis, settings)
        assert queue.lease_ttl_seconds == 120
        assert queue.max_attempts == 5
