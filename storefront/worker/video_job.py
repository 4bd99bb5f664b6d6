"""Video generation through the external provider: submit, poll, record the asset."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.config import settings
from storefront.db.models import Video
from storefront.errors import ExternalServiceError

logger = logging.getLogger(__name__)

MOCK_VIDEO_URL = "https://placehold.co/1280x720/1f1f1f/808080?text=Generated+Video"
MOCK_THUMBNAIL_URL = "https://placehold.co/640x360/1f1f1f/808080?text=Video+Thumbnail"


class VideoProviderClient:
    """Thin async client for the text-to-video generation API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.video_api_key
        self.base_url = (base_url or settings.video_api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=settings.video_request_timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def submit(self, prompt: str, aspect_ratio: str) -> str:
        response = await self._client.post(
            "/generations",
            json={
                "prompt": prompt,
                "model": settings.video_model,
                "aspect_ratio": "16:9" if aspect_ratio == "landscape" else "9:16",
                "resolution": settings.video_resolution,
                "duration": "5s",
            },
        )
        response.raise_for_status()
        generation_id = response.json().get("id")
        if not generation_id:
            raise ExternalServiceError("Generation created without ID")
        return generation_id

    async def get_status(self, generation_id: str) -> dict[str, Any]:
        response = await self._client.get(f"/generations/{generation_id}")
        response.raise_for_status()
        return response.json()


class VideoGenerator:
    """Runs one generation end to end and records the outcome on the video row.

    Failures are recorded as ``status=failed`` with an error message and are
    not re-raised: a human re-triggers generation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        client: Optional[VideoProviderClient] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.client = client
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.video_poll_interval_seconds
        )
        self.max_attempts = max_attempts or settings.video_poll_max_attempts

    async def _update(self, video_id: int, **values) -> None:
        async with self.session_factory() as db:
            video = await db.get(Video, video_id)
            if video is None:
                raise ExternalServiceError(f"Video {video_id} no longer exists")
            for key, value in values.items():
                setattr(video, key, value)
            video.updated_at = datetime.utcnow()
            await db.commit()

    async def generate(self, video_id: int, prompt: str, aspect_ratio: str = "landscape") -> str:
        """Generate a video; returns the final status."""
        logger.info(f"Generating video {video_id}: prompt={prompt[:50]!r}, aspect={aspect_ratio}")
        try:
            await self._update(video_id, status="generating", error_message=None)

            if self.client is None or not self.client.api_key:
                logger.warning("Video API key not configured, using mock generation")
                await self._update(
                    video_id, status="ready", url=MOCK_VIDEO_URL, thumbnail_url=MOCK_THUMBNAIL_URL
                )
                return "ready"

            generation_id = await self.client.submit(prompt, aspect_ratio)
            await self._update(video_id, external_id=generation_id)
            logger.info(f"Generation created for video {video_id}: {generation_id}")

            for attempt in range(1, self.max_attempts + 1):
                await asyncio.sleep(self.poll_interval)
                status = await self.client.get_status(generation_id)
                state = status.get("state")
                logger.debug(f"Generation {generation_id} state (attempt {attempt}): {state}")

                if state == "completed":
                    video_url = (status.get("assets") or {}).get("video")
                    if not video_url:
                        raise ExternalServiceError("No video URL in completed generation")
                    await self._update(
                        video_id,
                        status="ready",
                        url=video_url,
                        thumbnail_url=(status.get("assets") or {}).get("image"),
                    )
                    logger.info(f"Video {video_id} ready")
                    return "ready"
                if state == "failed":
                    raise ExternalServiceError(status.get("failure_reason") or "Generation failed")

            raise ExternalServiceError(
                f"Generation timed out after {self.max_attempts} status checks"
            )
        except Exception as e:
            # Recorded on the video and never retried by the queue
            logger.error(f"Video generation failed for {video_id}: {e}", exc_info=True)
            message = str(e) or type(e).__name__
            await self._update(video_id, status="failed", error_message=message[:500])
            return "failed"
