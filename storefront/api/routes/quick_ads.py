"""Quick ad routes."""

from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.api.deps import get_dispatcher
from storefront.campaigns.quick_ads import QuickAdDispatcher

router = APIRouter(prefix="/api/quick-ads", tags=["quick-ads"])


class QuickAdCreate(BaseModel):
    name: str
    duration_seconds: int = 10
    product_id: Optional[int] = None
    promotional_price: Optional[Decimal] = None
    update_price: bool = False
    display_text: Optional[str] = None
    display_price: Optional[str] = None
    image_url: Optional[str] = None
    image_mode: Optional[str] = None


class QuickAdResponse(BaseModel):
    id: int
    name: str
    product_id: Optional[int]
    promotional_price: Optional[float]
    update_price: bool
    display_text: Optional[str]
    display_price: Optional[str]
    image_url: Optional[str]
    image_mode: Optional[str]
    duration_seconds: int

    class Config:
        from_attributes = True


@router.post("", response_model=QuickAdResponse, status_code=201)
async def create_quick_ad(
    data: QuickAdCreate,
    dispatcher: QuickAdDispatcher = Depends(get_dispatcher),
):
    """Create a quick ad."""
    return await dispatcher.create(**data.model_dump())


@router.post("/{ad_id}/play")
async def play_quick_ad(
    ad_id: int,
    dispatcher: QuickAdDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Show a quick ad now. Returns 409 while a campaign holds the display."""
    quick_ad = await dispatcher.play(ad_id)
    return {"success": True, "quickAd": quick_ad}
