"""Worker process: APScheduler feeding the job queue, plus the job runner."""

import asyncio
import logging
import signal

from storefront.config import settings
from storefront.db.models import Base
from storefront.db.session import AsyncSessionLocal, engine
from storefront.logging_config import setup_logging
from storefront.notify.events import CHANNELS, EventPublisher
from storefront.notify.pubsub import InProcessPubSub, PostgresRelay
from storefront.pricing.service import get_price_interval_minutes
from storefront.worker.queue import JobQueue, JobWorker
from storefront.worker.scheduler import setup_scheduler
from storefront.worker.tasks import TaskRunner
from storefront.worker.video_job import VideoGenerator, VideoProviderClient

logger = logging.getLogger(__name__)


async def load_price_interval() -> int:
    async with AsyncSessionLocal() as db:
        return await get_price_interval_minutes(db)


async def main():
    logger.info("Starting storefront worker...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Publish-only: the worker has no display streams to feed
    relay = PostgresRelay(InProcessPubSub(), CHANNELS)
    events = EventPublisher(relay)

    video_client = VideoProviderClient() if settings.video_api_key else None
    runner = TaskRunner(
        AsyncSessionLocal,
        events,
        video_generator=VideoGenerator(AsyncSessionLocal, client=video_client),
    )

    queue = JobQueue()
    worker = JobWorker(queue, runner.handlers)

    scheduler = setup_scheduler(queue, await load_price_interval(), load_price_interval)
    scheduler.start()
    logger.info("Scheduler started")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        logger.info("Shutting down...")
        scheduler.shutdown(wait=False)
        await queue.close()
        await relay.close()
        if video_client is not None:
            await video_client.close()
        await engine.dispose()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    setup_logging(process_name="worker")
    asyncio.run(main())
