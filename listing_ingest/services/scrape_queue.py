"""
Scrape queue - Redis-backed FIFO with TTL processing leases.

Layout:
    queue:scrape                                 list of job JSON (FIFO, RPUSH/LPOP)
    queue:scrape:processing:{job_id}:{token}     lease key, expires after the lease TTL
    queue:scrape:leases                          hash "{job_id}:{token}" -> job JSON, used to reclaim expired leases
    queue:scrape:stats                           hash with the lifetime total_queued counter
    queue:scrape:stats:{YYYY-MM-DD}              hash with completed_today / failed_today

Every lease gets a fresh token, so a worker whose lease expired and was handed to
someone else can only ever touch its own (already gone) lease key.

The queue only covers the scraping call. Callers free the slot with complete_job()
as soon as scraped content is persisted.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from listing_ingest.schemas.queue import QueueStats, ScrapeJob

logger = logging.getLogger(__name__)

QUEUE_KEY = "queue:scrape"
PROCESSING_PREFIX = "queue:scrape:processing:"
LEASES_KEY = "queue:scrape:leases"
STATS_KEY = "queue:scrape:stats"

DEFAULT_LEASE_TTL_SECONDS = 300
DEFAULT_MAX_ATTEMPTS = 3
DAILY_STATS_TTL_SECONDS = 2 * 86400


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _lease_field(job_id: str, lease_token: str) -> str:
    return f"{job_id}:{lease_token}"


class ScrapeQueue:
    """
    Queue client bound to an explicit Redis handle.

    Atomicity comes from Redis: LPOP hands each job to exactly one caller, DEL on
    the token-scoped lease key decides whether a completion counts, and HDEL
    decides which caller reclaims an expired lease.
    """

    def __init__(
        self,
        redis,
        lease_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.redis = redis
        self.lease_ttl_seconds = lease_ttl_seconds
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, redis, settings) -> "ScrapeQueue":
        return cls(
            redis,
            lease_ttl_seconds=settings.scrape_lease_ttl_seconds,
            max_attempts=settings.scrape_max_attempts,
        )

    @staticmethod
    def lease_key(job_id: str, lease_token: str) -> str:
        return f"{PROCESSING_PREFIX}{_lease_field(job_id, lease_token)}"

    async def enqueue(self, job: ScrapeJob) -> int:
        """Append a job to the tail. Returns its 1-indexed position."""
        position = await self.redis.rpush(QUEUE_KEY, job.model_dump_json())
        try:
            await self.redis.hincrby(STATS_KEY, "total_queued", 1)
        except Exception as e:
            logger.debug("Queue stats update failed: %s", str(e))
        logger.info("Job %s enqueued at position %d", job.id, position, extra={"job_id": job.id})
        return int(position)

    async def dequeue_next(self) -> Optional[ScrapeJob]:
        """
        Pop the head job and lease it. Returns None when the queue is empty.
        Expired leases are pushed back to the head first.

        The returned job carries the lease_token that complete_job() needs.
        """
        await self.reclaim_expired_leases()

        while True:
            raw = await self.redis.lpop(QUEUE_KEY)
            if raw is None:
                return None
            try:
                job = ScrapeJob.model_validate_json(raw)
            except ValidationError as e:
                logger.error("Dropping malformed queue entry: %s", str(e)[:200])
                continue

            job.attempts += 1
            job.lease_token = uuid.uuid4().hex
            payload = job.model_dump_json()
            await self.redis.set(self.lease_key(job.id, job.lease_token), payload, ex=self.lease_ttl_seconds)
            await self.redis.hset(LEASES_KEY, _lease_field(job.id, job.lease_token), payload)
            logger.info(
                "Job %s leased (attempt %d)", job.id, job.attempts, extra={"job_id": job.id},
            )
            return job

    async def complete_job(self, job_id: str, success: bool, lease_token: Optional[str]) -> bool:
        """
        Release one lease and count the outcome.
        Returns False (and counts nothing) when that lease is no longer live,
        including when the job has since been leased again under a new token.
        """
        if not lease_token:
            logger.warning("complete_job(%s) called without a lease token", job_id, extra={"job_id": job_id})
            return False

        removed = await self.redis.delete(self.lease_key(job_id, lease_token))
        # The ledger entry is per lease; dropping it stops a finished job from being reclaimed
        await self.redis.hdel(LEASES_KEY, _lease_field(job_id, lease_token))
        if not removed:
            logger.debug("complete_job(%s): lease no longer live", job_id, extra={"job_id": job_id})
            return False

        await self._count_outcome(success)
        logger.info(
            "Job %s %s", job_id, "completed" if success else "failed", extra={"job_id": job_id},
        )
        return True

    async def reclaim_expired_leases(self) -> int:
        """
        Requeue jobs whose lease expired without completion.
        Jobs that already used max_attempts leases are counted as failed instead.
        """
        leases = await self.redis.hgetall(LEASES_KEY)
        reclaimed = 0
        for field, raw in leases.items():
            try:
                job = ScrapeJob.model_validate_json(raw)
            except ValidationError:
                logger.error("Dropping malformed lease entry %s", field)
                await self.redis.hdel(LEASES_KEY, field)
                continue

            if job.lease_token and await self.redis.exists(self.lease_key(job.id, job.lease_token)):
                continue
            # HDEL is the claim - only one caller gets 1 back
            if not await self.redis.hdel(LEASES_KEY, field):
                continue

            if job.attempts >= self.max_attempts:
                logger.warning(
                    "Job %s abandoned after %d attempts", job.id, job.attempts,
                    extra={"job_id": job.id},
                )
                await self._count_outcome(False)
                continue

            job.lease_token = None
            await self.redis.lpush(QUEUE_KEY, job.model_dump_json())
            reclaimed += 1
            logger.warning("Lease for job %s expired, requeued at head", job.id, extra={"job_id": job.id})
        return reclaimed

    async def count_processing(self) -> int:
        count = 0
        async for _ in self.redis.scan_iter(match=f"{PROCESSING_PREFIX}*"):
            count += 1
        return count

    async def queue_length(self) -> int:
        return int(await self.redis.llen(QUEUE_KEY))

    async def get_stats(self) -> QueueStats:
        daily = await self.redis.hgetall(f"{STATS_KEY}:{_today()}") or {}
        total = await self.redis.hget(STATS_KEY, "total_queued")
        return QueueStats(
            queue_length=await self.queue_length(),
            processing_count=await self.count_processing(),
            completed_today=int(daily.get("completed_today", 0)),
            failed_today=int(daily.get("failed_today", 0)),
            total_queued=int(total or 0),
        )

    async def get_job_position(self, job_id: str) -> Optional[int]:
        """1-indexed position in the queue, or None if not queued."""
        entries = await self.redis.lrange(QUEUE_KEY, 0, -1)
        for index, raw in enumerate(entries):
            try:
                if json.loads(raw).get("id") == job_id:
                    return index + 1
            except (json.JSONDecodeError, AttributeError):
                continue
        return None

    async def is_job_processing(self, job_id: str) -> bool:
        async for _ in self.redis.scan_iter(match=f"{PROCESSING_PREFIX}{job_id}:*"):
            return True
        return False

    async def _count_outcome(self, success: bool) -> None:
        key = f"{STATS_KEY}:{_today()}"
        field = "completed_today" if success else "failed_today"
        try:
            await self.redis.hincrby(key, field, 1)
            await self.redis.expire(key, DAILY_STATS_TTL_SECONDS)
        except Exception as e:
            logger.debug("Queue stats update failed: %s", str(e))
