"""What the display should be showing right now, for clients reconciling after a missed event."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.campaigns.orchestrator import campaign_payload
from storefront.campaigns.quick_ads import is_playing, remaining_seconds
from storefront.campaigns.states import ACTIVE_STATUSES
from storefront.db.models import Product, QuickAd, VideoCampaign
from storefront.notify.events import isoformat, price_value
from storefront.pricing.engine import clamp_price


async def get_display_state(db: AsyncSession, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or datetime.utcnow()

    campaign = (
        await db.execute(
            select(VideoCampaign)
            .options(selectinload(VideoCampaign.video))
            .where(VideoCampaign.status.in_(ACTIVE_STATUSES))
            .limit(1)
        )
    ).scalar_one_or_none()
    if campaign is not None:
        payload = campaign_payload(campaign, include_countdown=True)
        payload["status"] = campaign.status
        payload["startedAt"] = isoformat(campaign.started_at) if campaign.started_at else None
        return {"type": campaign.status, "campaign": payload}

    ad = (
        await db.execute(
            select(QuickAd)
            .options(selectinload(QuickAd.product))
            .where(QuickAd.last_played_at.is_not(None))
            .order_by(QuickAd.last_played_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if ad is not None and is_playing(ad, now):
        if ad.product is not None:
            display_text = ad.product.name
            price = price_value(
                clamp_price(float(ad.promotional_price), ad.product.min_price, ad.product.max_price)
            )
        else:
            display_text = ad.display_text or ad.name
            price = ad.display_price
        return {
            "type": "quick_ad",
            "quickAd": {
                "id": ad.id,
                "displayText": display_text,
                "price": price,
                "oldPrice": None,
                "imageUrl": ad.image_url,
                "imageMode": ad.image_mode,
                "durationSeconds": remaining_seconds(ad, now),
            },
        }

    return {"type": "idle"}


async def get_display_products(db: AsyncSession) -> list[dict[str, Any]]:
    """Active products with their live price and trend arrow."""
    result = await db.execute(
        select(Product).where(Product.status == "active").order_by(Product.name)
    )
    return [
        {
            "id": product.id,
            "name": product.name,
            "currentPrice": price_value(product.current_price),
            "trend": product.trend,
        }
        for product in result.scalars().all()
    ]
