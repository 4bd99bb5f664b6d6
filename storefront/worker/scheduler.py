"""APScheduler job definitions that feed the durable job queue."""

import logging
from datetime import datetime
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront.config import settings
from storefront.worker.queue import JobQueue
from storefront.worker.tasks import PROCESS_CAMPAIGNS, UPDATE_PRICES

logger = logging.getLogger(__name__)

PRICE_JOB_ID = "price_tick"
CAMPAIGN_JOB_ID = "campaign_tick"
RELOAD_JOB_ID = "price_interval_reload"


class PriceIntervalWatcher:
    """Re-reads the price interval setting and reschedules the price tick when it changes."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        load_interval: Callable[[], Awaitable[int]],
        current_minutes: int,
    ):
        self.scheduler = scheduler
        self.load_interval = load_interval
        self.current_minutes = current_minutes

    async def reload(self) -> None:
        try:
            minutes = await self.load_interval()
        except Exception as e:
            logger.error(f"Failed to reload price update interval: {e}")
            return

        if minutes == self.current_minutes:
            logger.debug(f"Price update interval unchanged ({minutes} minute(s))")
            return

        self.scheduler.reschedule_job(PRICE_JOB_ID, trigger=IntervalTrigger(minutes=minutes))
        logger.info(
            f"Price update interval reloaded: {self.current_minutes} -> {minutes} minute(s)"
        )
        self.current_minutes = minutes


def setup_scheduler(
    queue: JobQueue,
    price_interval_minutes: int,
    load_interval: Callable[[], Awaitable[int]],
) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - process-campaigns enqueued every settings.campaign_tick_seconds under a
      fixed job key, so at most one tick is pending or running
    - update-prices enqueued every ``price_interval_minutes``, first run immediately
    - price interval re-read every settings.price_interval_reload_minutes

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()

    async def enqueue_campaign_tick():
        try:
            await queue.add_job(
                PROCESS_CAMPAIGNS,
                {},
                job_key=PROCESS_CAMPAIGNS,
                key_ttl=settings.campaign_tick_key_ttl_seconds,
            )
        except Exception as e:
            logger.error(f"Failed to schedule campaign processor: {e}")

    async def enqueue_price_tick():
        try:
            await queue.add_job(UPDATE_PRICES, {"manual": False})
            logger.info("Scheduled price update job")
        except Exception as e:
            logger.error(f"Failed to schedule price update job: {e}")

    scheduler.add_job(
        enqueue_campaign_tick,
        IntervalTrigger(seconds=settings.campaign_tick_seconds),
        id=CAMPAIGN_JOB_ID,
        name="Enqueue campaign processing",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.add_job(
        enqueue_price_tick,
        IntervalTrigger(minutes=price_interval_minutes),
        id=PRICE_JOB_ID,
        name="Enqueue price update",
        next_run_time=datetime.now(),
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    watcher = PriceIntervalWatcher(scheduler, load_interval, price_interval_minutes)
    scheduler.add_job(
        watcher.reload,
        IntervalTrigger(minutes=settings.price_interval_reload_minutes),
        id=RELOAD_JOB_ID,
        name="Reload price update interval",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: campaign tick every %ds, price update every %d minute(s), "
        "interval reload every %d minutes",
        settings.campaign_tick_seconds,
        price_interval_minutes,
        settings.price_interval_reload_minutes,
    )
    return scheduler
