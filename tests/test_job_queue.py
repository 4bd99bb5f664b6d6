"""Tests for the durable job queue, the worker loop and the scheduler glue."""

import asyncio
from uuid import uuid4

import pytest
import redis.asyncio as redis

from storefront.config import settings
from storefront.worker.queue import Job, JobQueue, JobWorker, backoff_seconds
from storefront.worker.scheduler import PRICE_JOB_ID, PriceIntervalWatcher, setup_scheduler
from storefront.worker.tasks import PROCESS_CAMPAIGNS, UPDATE_PRICES


async def _redis_available() -> bool:
    try:
        client = await redis.from_url(settings.redis_url, decode_responses=True)
        await client.ping()
        await client.close()
        return True
    except Exception:
        return False


class FakeQueue:
    """Records what the worker reports back to the queue."""

    def __init__(self, jobs=None):
        self.jobs = list(jobs or [])
        self.completed: list[Job] = []
        self.failed: list[tuple[Job, BaseException]] = []
        self.added: list[tuple[str, dict, str | None]] = []
        self.added_kwargs: list[dict] = []

    async def claim(self, limit: int = 1):
        claimed, self.jobs = self.jobs[:limit], self.jobs[limit:]
        return claimed

    async def complete(self, job):
        self.completed.append(job)

    async def fail(self, job, error):
        self.failed.append((job, error))
        return True

    async def add_job(self, task, payload=None, job_key=None, **kwargs):
        self.added.append((task, payload, job_key))
        self.added_kwargs.append(kwargs)
        return uuid4().hex


def test_backoff_is_exponential_and_capped():
    assert backoff_seconds(1, 2.0, 300.0) == 2.0
    assert backoff_seconds(2, 2.0, 300.0) == 4.0
    assert backoff_seconds(5, 2.0, 300.0) == 32.0
    assert backoff_seconds(20, 2.0, 300.0) == 300.0


def test_job_json_round_trip_keeps_retry_state():
    job = Job(task=UPDATE_PRICES, payload={"manual": True}, attempts=2, job_key=None)
    restored = Job.from_json(job.to_json())
    assert restored == job


@pytest.mark.asyncio
async def test_worker_completes_successful_jobs():
    seen = []

    async def handler(payload):
        seen.append(payload)

    job = Job(task="echo", payload={"n": 1})
    queue = FakeQueue([job])
    worker = JobWorker(queue, {"echo": handler}, concurrency=2, poll_interval=0.01)

    assert await worker.poll_once() == 1
    await asyncio.sleep(0.01)

    assert seen == [{"n": 1}]
    assert queue.completed == [job]
    assert queue.failed == []


@pytest.mark.asyncio
async def test_worker_reports_failures_for_retry():
    async def handler(payload):
        raise RuntimeError("database unavailable")

    job = Job(task="flaky", payload={})
    queue = FakeQueue()
    worker = JobWorker(queue, {"flaky": handler})

    await worker.run_job(job)

    assert queue.completed == []
    assert len(queue.failed) == 1
    assert str(queue.failed[0][1]) == "database unavailable"


@pytest.mark.asyncio
async def test_worker_drops_unknown_tasks():
    job = Job(task="nobody-handles-this", payload={})
    queue = FakeQueue()
    worker = JobWorker(queue, {})

    await worker.run_job(job)

    assert queue.completed == [job]


@pytest.mark.asyncio
async def test_worker_stops():
    worker = JobWorker(FakeQueue(), {}, poll_interval=0.01)
    runner = asyncio.create_task(worker.run())
    await asyncio.sleep(0.03)
    worker.stop()
    await asyncio.wait_for(runner, timeout=1)


@pytest.mark.asyncio
async def test_keyed_job_is_deduplicated_until_complete():
    if not await _redis_available():
        pytest.skip("Redis not available")

    queue = JobQueue(redis_url=settings.redis_url, name=f"test:{uuid4().hex}")
    try:
        first = await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS)
        assert first is not None
        assert await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS) is None
        assert await (await queue._get_redis()).zcard(queue.ready_key) == 1

        [job] = await queue.claim(limit=5)
        # Still held while running
        assert await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS) is None

        await queue.complete(job)
        assert await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS) is not None
    finally:
        client = await queue._get_redis()
        keys = await client.keys(f"{queue.name}:*")
        if keys:
            await client.delete(*keys)
        await queue.close()


@pytest.mark.asyncio
async def test_failed_job_is_retried_then_dropped():
    if not await _redis_available():
        pytest.skip("Redis not available")

    queue = JobQueue(redis_url=settings.redis_url, name=f"test:{uuid4().hex}", max_attempts=2)
    try:
        await queue.add_job(UPDATE_PRICES, {"manual": False}, job_key="prices")
        [job] = await queue.claim()

        assert await queue.fail(job, RuntimeError("boom")) is True
        # Backoff pushes it into the future
        assert await queue.claim() == []
        assert await (await queue._get_redis()).zcard(queue.ready_key) == 1

        assert await queue.fail(job, RuntimeError("boom again")) is False
        assert await queue.add_job(UPDATE_PRICES, {}, job_key="prices") is not None
    finally:
        client = await queue._get_redis()
        keys = await client.keys(f"{queue.name}:*")
        if keys:
            await client.delete(*keys)
        await queue.close()


class FakeScheduler:
    def __init__(self):
        self.rescheduled = []

    def reschedule_job(self, job_id, trigger):
        self.rescheduled.append((job_id, trigger))


@pytest.mark.asyncio
async def test_interval_watcher_reschedules_only_on_change():
    values = iter([5, 5, 10])

    async def load():
        return next(values)

    scheduler = FakeScheduler()
    watcher = PriceIntervalWatcher(scheduler, load, current_minutes=1)

    await watcher.reload()
    await watcher.reload()
    await watcher.reload()

    assert [job_id for job_id, _ in scheduler.rescheduled] == [PRICE_JOB_ID, PRICE_JOB_ID]
    assert watcher.current_minutes == 10


@pytest.mark.asyncio
async def test_interval_watcher_keeps_schedule_when_reload_fails():
    async def load():
        raise ConnectionError("database unavailable")

    scheduler = FakeScheduler()
    watcher = PriceIntervalWatcher(scheduler, load, current_minutes=3)

    await watcher.reload()

    assert scheduler.rescheduled == []
    assert watcher.current_minutes == 3


@pytest.mark.asyncio
async def test_scheduler_registers_jobs():
    async def load():
        return 2

    scheduler = setup_scheduler(FakeQueue(), 2, load)
    job_ids = {job.id for job in scheduler.get_jobs()}
    assert job_ids == {"campaign_tick", PRICE_JOB_ID, "price_interval_reload"}
    assert scheduler.get_job(PRICE_JOB_ID).max_instances == 1


@pytest.mark.asyncio
async def test_abandoned_job_is_claimable_after_visibility_timeout():
    if not await _redis_available():
        pytest.skip("Redis not available")

    queue = JobQueue(
        redis_url=settings.redis_url, name=f"test:{uuid4().hex}", visibility_timeout=0.2
    )
    try:
        job_id = await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS, key_ttl=30)
        [job] = await queue.claim()
        assert job.id == job_id
        assert job.key_ttl == 30

        # The worker dies here: neither complete() nor fail() is called
        assert await queue.claim() == []

        await asyncio.sleep(0.3)
        [again] = await queue.claim()
        assert again.id == job_id

        await queue.complete(again)
        client = await queue._get_redis()
        assert await client.zcard(queue.running_key) == 0
        assert await queue.add_job(PROCESS_CAMPAIGNS, {}, job_key=PROCESS_CAMPAIGNS) is not None
    finally:
        client = await queue._get_redis()
        keys = await client.keys(f"{queue.name}:*")
        if keys:
            await client.delete(*keys)
        await queue.close()


@pytest.mark.asyncio
async def test_campaign_tick_key_expires_quickly():
    if not await _redis_available():
        pytest.skip("Redis not available")

    queue = JobQueue(redis_url=settings.redis_url, name=f"test:{uuid4().hex}")
    try:
        await queue.add_job(
            PROCESS_CAMPAIGNS,
            {},
            job_key=PROCESS_CAMPAIGNS,
            key_ttl=settings.campaign_tick_key_ttl_seconds,
        )
        client = await queue._get_redis()
        ttl = await client.ttl(f"{queue.name}:key:{PROCESS_CAMPAIGNS}")
        assert 0 < ttl <= settings.campaign_tick_key_ttl_seconds
    finally:
        client = await queue._get_redis()
        keys = await client.keys(f"{queue.name}:*")
        if keys:
            await client.delete(*keys)
        await queue.close()


@pytest.mark.asyncio
async def test_scheduled_campaign_tick_uses_short_key_ttl():
    async def load():
        return 1

    queue = FakeQueue()
    scheduler = setup_scheduler(queue, 1, load)

    await scheduler.get_job("campaign_tick").func()

    task, payload, job_key = queue.added[0]
    assert (task, job_key) == (PROCESS_CAMPAIGNS, PROCESS_CAMPAIGNS)
    assert queue.added_kwargs[0]["key_ttl"] == settings.campaign_tick_key_ttl_seconds
