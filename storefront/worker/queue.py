"""Redis-backed durable job queue with keyed deduplication and retry backoff."""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

import redis.asyncio as redis

from storefront.config import settings
from storefront import metrics

logger = logging.getLogger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[None]]

# Delete the dedup key only if it still belongs to this job
RELEASE_KEY_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


@dataclass
class Job:
    task: str
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: uuid4().hex)
    attempts: int = 0
    max_attempts: int = 5
    job_key: Optional[str] = None
    key_ttl: Optional[int] = None
    last_error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        return cls(**json.loads(raw))


def backoff_seconds(attempt: int, base: float, cap: float) -> float:
    """Exponential delay before retry number ``attempt`` (1-based)."""
    return min(cap, base * (2 ** (attempt - 1)))


class JobQueue:
    """
    Durable queue of named tasks.

    Features:
    - Jobs stored in Redis so they survive a worker restart
    - ``job_key`` deduplication: a keyed job cannot be enqueued again while
      a previous one is pending or running
    - Bounded retries with exponential backoff
    - Atomic claim (ZREM) so each job runs on exactly one worker
    - Claimed jobs carry a visibility deadline; a job whose worker died
      before completing it is put back on the ready set once it passes
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        name: Optional[str] = None,
        max_attempts: Optional[int] = None,
        visibility_timeout: Optional[float] = None,
    ):
        self.redis_url = redis_url or settings.redis_url
        self.name = name or settings.queue_name
        self.max_attempts = max_attempts or settings.job_max_attempts
        self.visibility_timeout = (
            visibility_timeout
            if visibility_timeout is not None
            else settings.job_visibility_timeout_seconds
        )
        self._redis: Optional[redis.Redis] = None

    @property
    def ready_key(self) -> str:
        return f"{self.name}:ready"

    @property
    def running_key(self) -> str:
        return f"{self.name}:running"

    def _job_key(self, job_id: str) -> str:
        return f"{self.name}:job:{job_id}"

    def _dedup_key(self, job_key: str) -> str:
        return f"{self.name}:key:{job_key}"

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    async def add_job(
        self,
        task: str,
        payload: Optional[dict[str, Any]] = None,
        job_key: Optional[str] = None,
        run_at: Optional[float] = None,
        max_attempts: Optional[int] = None,
        key_ttl: Optional[int] = None,
    ) -> Optional[str]:
        """
        Enqueue a task.

        Args:
            task: Registered task name
            payload: JSON-serializable payload
            job_key: Dedup key; enqueue is skipped while a job holds it
            run_at: Unix timestamp to run at (default: now)
            max_attempts: Override the queue default
            key_ttl: Seconds the dedup key outlives a worker that died
                holding it (default: settings.job_key_ttl_seconds)

        Returns:
            Job id, or None if deduplicated
        """
        client = await self._get_redis()
        job = Job(
            task=task,
            payload=payload or {},
            max_attempts=max_attempts or self.max_attempts,
            job_key=job_key,
            key_ttl=(key_ttl or settings.job_key_ttl_seconds) if job_key else None,
        )

        if job_key:
            acquired = await client.set(
                self._dedup_key(job_key),
                job.id,
                nx=True,
                ex=job.key_ttl,
            )
            if not acquired:
                metrics.jobs_deduplicated_total.labels(task=task).inc()
                logger.debug(f"Job {task} already pending under key {job_key}")
                return None

        await client.set(self._job_key(job.id), job.to_json())
        await client.zadd(self.ready_key, {job.id: run_at if run_at is not None else time.time()})
        logger.debug(f"Enqueued {task} ({job.id[:8]})")
        return job.id

    async def _requeue_expired(self, client: redis.Redis, now: float) -> int:
        """Put jobs whose visibility deadline passed back on the ready set."""
        expired = await client.zrangebyscore(self.running_key, "-inf", now)
        requeued = 0
        for job_id in expired:
            # Only one worker gets to move each job
            if not await client.zrem(self.running_key, job_id):
                continue
            await client.zadd(self.ready_key, {job_id: now})
            requeued += 1
            logger.warning(f"Job {job_id[:8]} exceeded its visibility timeout; requeued")
        return requeued

    async def claim(self, limit: int = 1) -> list[Job]:
        """Claim up to ``limit`` jobs that are due."""
        client = await self._get_redis()
        now = time.time()
        await self._requeue_expired(client, now)
        due = await client.zrangebyscore(self.ready_key, "-inf", now, start=0, num=limit)

        jobs = []
        for job_id in due:
            # Another worker may have claimed it between the read and here
            if not await client.zrem(self.ready_key, job_id):
                continue
            raw = await client.get(self._job_key(job_id))
            if raw is None:
                logger.warning(f"Claimed job {job_id} has no body; dropping")
                continue
            await client.zadd(self.running_key, {job_id: now + self.visibility_timeout})
            jobs.append(Job.from_json(raw))
        return jobs

    async def _release_key(self, job: Job) -> None:
        if job.job_key:
            client = await self._get_redis()
            await client.eval(RELEASE_KEY_SCRIPT, 1, self._dedup_key(job.job_key), job.id)

    async def complete(self, job: Job) -> None:
        client = await self._get_redis()
        await client.zrem(self.running_key, job.id)
        await client.delete(self._job_key(job.id))
        await self._release_key(job)

    async def fail(self, job: Job, error: BaseException) -> bool:
        """Record a failed attempt and schedule a retry if attempts remain.

        Returns:
            True if the job will be retried
        """
        client = await self._get_redis()
        await client.zrem(self.running_key, job.id)
        job.attempts += 1
        job.last_error = str(error)[:500]

        if job.attempts >= job.max_attempts:
            logger.error(
                f"Job {job.task} ({job.id[:8]}) failed permanently after {job.attempts} attempts: {error}"
            )
            await client.delete(self._job_key(job.id))
            await self._release_key(job)
            return False

        delay = backoff_seconds(
            job.attempts, settings.job_backoff_base_seconds, settings.job_backoff_max_seconds
        )
        await client.set(self._job_key(job.id), job.to_json())
        await client.zadd(self.ready_key, {job.id: time.time() + delay})
        if job.job_key:
            await client.expire(
                self._dedup_key(job.job_key),
                (job.key_ttl or settings.job_key_ttl_seconds) + int(delay),
            )
        logger.warning(
            f"Job {job.task} ({job.id[:8]}) attempt {job.attempts}/{job.max_attempts} failed; "
            f"retrying in {delay:.0f}s: {error}"
        )
        return True


class JobWorker:
    """Polls the queue and runs claimed jobs with bounded concurrency."""

    def __init__(
        self,
        queue: JobQueue,
        handlers: dict[str, TaskHandler],
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ):
        self.queue = queue
        self.handlers = handlers
        self.concurrency = concurrency or settings.queue_concurrency
        self.poll_interval = poll_interval or settings.queue_poll_interval_seconds
        self._running: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    async def run_job(self, job: Job) -> None:
        handler = self.handlers.get(job.task)
        if handler is None:
            logger.error(f"No handler registered for task {job.task}; dropping job {job.id[:8]}")
            await self.queue.complete(job)
            return

        try:
            await handler(job.payload)
        except Exception as e:
            metrics.record_job_run(job.task, success=False)
            await self.queue.fail(job, e)
        else:
            metrics.record_job_run(job.task, success=True)
            await self.queue.complete(job)

    async def poll_once(self) -> int:
        """Claim and start as many jobs as there are free slots."""
        free = self.concurrency - len(self._running)
        if free <= 0:
            return 0
        jobs = await self.queue.claim(limit=free)
        for job in jobs:
            task = asyncio.create_task(self.run_job(job))
            self._running.add(task)
            task.add_done_callback(self._running.discard)
        return len(jobs)

    async def run(self) -> None:
        logger.info(f"Job worker started with tasks: {', '.join(self.handlers)}")
        while not self._stopped.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Queue poll failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
        logger.info("Job worker stopped")

    def stop(self) -> None:
        self._stopped.set()
