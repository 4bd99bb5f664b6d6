"""Campaign scheduling routes."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.api.deps import get_orchestrator
from storefront.campaigns.orchestrator import CampaignOrchestrator

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


class CampaignCreate(BaseModel):
    video_id: int
    scheduled_at: datetime
    countdown_seconds: int = 60
    product_id: Optional[int] = None
    promotional_price: Optional[Decimal] = None
    highlight_duration_seconds: Optional[int] = None


class CampaignResponse(BaseModel):
    id: int
    video_id: int
    scheduled_at: datetime
    countdown_seconds: int
    status: str
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    product_id: Optional[int]
    promotional_price: Optional[float]
    highlight_duration_seconds: Optional[int]

    class Config:
        from_attributes = True


def to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@router.post("", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    data: CampaignCreate,
    orchestrator: CampaignOrchestrator = Depends(get_orchestrator),
):
    """Schedule a video campaign."""
    return await orchestrator.create_campaign(
        video_id=data.video_id,
        scheduled_at=to_naive_utc(data.scheduled_at),
        countdown_seconds=data.countdown_seconds,
        product_id=data.product_id,
        promotional_price=data.promotional_price,
        highlight_duration_seconds=data.highlight_duration_seconds,
    )


@router.get("/upcoming", response_model=List[CampaignResponse])
async def list_upcoming(orchestrator: CampaignOrchestrator = Depends(get_orchestrator)):
    """Scheduled campaigns, soonest first."""
    return await orchestrator.list_upcoming()


@router.post("/{campaign_id}/cancel", response_model=CampaignResponse)
async def cancel_campaign(
    campaign_id: int,
    orchestrator: CampaignOrchestrator = Depends(get_orchestrator),
):
    """Cancel a campaign that has not finished yet."""
    return await orchestrator.cancel(campaign_id)
