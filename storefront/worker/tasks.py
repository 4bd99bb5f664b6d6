"""Task handlers executed by the job worker."""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.campaigns.orchestrator import CampaignOrchestrator
from storefront.notify.events import EventPublisher
from storefront.pricing.engine import RandomSource
from storefront.pricing.service import update_all_prices
from storefront.worker.video_job import VideoGenerator

logger = logging.getLogger(__name__)

UPDATE_PRICES = "update-prices"
PROCESS_CAMPAIGNS = "process-campaigns"
GENERATE_VIDEO = "generate-video"


class TaskRunner:
    """
    Runner for background tasks.

    Database and notification errors are logged and re-raised so the queue
    retries the job; video generation records its own failures instead.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        events: EventPublisher,
        video_generator: Optional[VideoGenerator] = None,
        rng: Optional[RandomSource] = None,
    ):
        self.session_factory = session_factory
        self.events = events
        self.orchestrator = CampaignOrchestrator(session_factory, events)
        self.video_generator = video_generator or VideoGenerator(session_factory)
        self.rng = rng

    @property
    def handlers(self):
        return {
            UPDATE_PRICES: self.update_prices,
            PROCESS_CAMPAIGNS: self.process_campaigns,
            GENERATE_VIDEO: self.generate_video,
        }

    async def update_prices(self, payload: dict[str, Any]) -> None:
        manual = bool(payload.get("manual", False))
        log_prefix = "[MANUAL]" if manual else "[AUTO]"
        logger.info(f"{log_prefix} Starting price update job")
        try:
            async with self.session_factory() as db:
                await update_all_prices(db, self.events, rng=self.rng, manual=manual)
        except Exception as e:
            logger.error(f"{log_prefix} Price update failed: {e}", exc_info=True)
            raise

    async def process_campaigns(self, payload: dict[str, Any]) -> None:
        try:
            result = await self.orchestrator.tick()
        except Exception as e:
            logger.error(f"Campaign processing failed: {e}", exc_info=True)
            raise
        if result.changed:
            logger.info(
                "Campaign tick: promoted=%s, started=%s, completed=%s",
                result.promoted,
                result.started_playing,
                result.completed,
            )

    async def generate_video(self, payload: dict[str, Any]) -> None:
        await self.video_generator.generate(
            video_id=int(payload["videoId"]),
            prompt=payload["prompt"],
            aspect_ratio=payload.get("aspectRatio", "landscape"),
        )
