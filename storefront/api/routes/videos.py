"""Video asset routes."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_database, get_queue
from storefront.db.models import Video
from storefront.worker.queue import JobQueue
from storefront.worker.tasks import GENERATE_VIDEO

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])


class VideoCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    prompt: str = Field(min_length=1)
    duration: int = Field(default=5, ge=1, le=60)
    aspect_ratio: str = Field(default="landscape", pattern="^(landscape|portrait)$")


class VideoResponse(BaseModel):
    id: int
    name: str
    prompt: str
    url: Optional[str]
    thumbnail_url: Optional[str]
    duration: int
    aspect_ratio: str
    status: str
    error_message: Optional[str]

    class Config:
        from_attributes = True


@router.post("", response_model=VideoResponse, status_code=202)
async def create_video(
    data: VideoCreate,
    db: AsyncSession = Depends(get_database),
    queue: JobQueue = Depends(get_queue),
):
    """Create a pending video and queue its generation."""
    now = datetime.utcnow()
    video = Video(
        name=data.name,
        prompt=data.prompt,
        duration=data.duration,
        aspect_ratio=data.aspect_ratio,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(video)
    await db.commit()
    await db.refresh(video)

    await queue.add_job(
        GENERATE_VIDEO,
        {
            "videoId": video.id,
            "prompt": video.prompt,
            "duration": video.duration,
            "aspectRatio": video.aspect_ratio,
        },
    )
    logger.info(f"Queued generation for video {video.id}")
    return video
