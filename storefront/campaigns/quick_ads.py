"""Instant overlay ads that preempt the idle display but never an active campaign."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from storefront.campaigns.orchestrator import find_active_campaign
from storefront.db.models import Product, QuickAd
from storefront.errors import ConflictError, NotFoundError, ValidationError
from storefront.notify.events import EventPublisher, price_value
from storefront.pricing.engine import clamp_price
from storefront.pricing.service import apply_promotional_price
from storefront import metrics

logger = logging.getLogger(__name__)

IMAGE_MODES = ("fullscreen", "background")


def is_playing(ad: QuickAd, now: datetime) -> bool:
    """An ad is on screen while last_played_at + duration is in the future."""
    if ad.last_played_at is None:
        return False
    return ad.last_played_at + timedelta(seconds=ad.duration_seconds) > now


def remaining_seconds(ad: QuickAd, now: datetime) -> int:
    if ad.last_played_at is None:
        return 0
    elapsed = int((now - ad.last_played_at).total_seconds())
    return max(0, ad.duration_seconds - elapsed)


def validate_quick_ad(
    name: str,
    duration_seconds: int,
    product_id: Optional[int],
    promotional_price: Optional[Decimal],
    display_text: Optional[str],
    image_url: Optional[str],
    image_mode: Optional[str],
) -> None:
    if not name or not name.strip():
        raise ValidationError("Name is required")
    if not 3 <= duration_seconds <= 30:
        raise ValidationError("Duration must be between 3 and 30 seconds")
    if not (product_id or display_text or image_url):
        raise ValidationError("Choose a product, enter text, or add an image")
    if product_id and (promotional_price is None or promotional_price <= 0):
        raise ValidationError("Enter a price for the selected product")
    if image_mode is not None and image_mode not in IMAGE_MODES:
        raise ValidationError(f"Invalid image mode: {image_mode}")


class QuickAdDispatcher:
    """Plays quick ads on the display, sharing the single-occupant rule with campaigns."""

    def __init__(self, session_factory: async_sessionmaker, events: EventPublisher):
        self.session_factory = session_factory
        self.events = events

    async def create(
        self,
        name: str,
        duration_seconds: int,
        product_id: Optional[int] = None,
        promotional_price: Optional[Decimal] = None,
        update_price: bool = False,
        display_text: Optional[str] = None,
        display_price: Optional[str] = None,
        image_url: Optional[str] = None,
        image_mode: Optional[str] = None,
    ) -> QuickAd:
        validate_quick_ad(
            name, duration_seconds, product_id, promotional_price, display_text, image_url, image_mode
        )
        async with self.session_factory() as db:
            if product_id is not None and await db.get(Product, product_id) is None:
                raise NotFoundError("Product not found")
            ad = QuickAd(
                name=name.strip(),
                product_id=product_id,
                promotional_price=promotional_price,
                update_price=update_price,
                display_text=display_text,
                display_price=display_price,
                image_url=image_url,
                image_mode=(image_mode or "background") if image_url else None,
                duration_seconds=duration_seconds,
            )
            db.add(ad)
            await db.commit()
            await db.refresh(ad)
        logger.info(f"Quick ad created: {ad.id}")
        return ad

    async def play(self, ad_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Put a quick ad on the display.

        Raises:
            ConflictError: a campaign is in countdown or playing
            NotFoundError: the ad does not exist

        Returns:
            The quick ad payload sent to display clients
        """
        now = now or datetime.utcnow()

        async with self.session_factory() as db:
            active_id = await find_active_campaign(db)
            if active_id is not None:
                metrics.display_conflicts_total.inc()
                raise ConflictError("A campaign is currently active. Wait for it to finish.")

            ad = (
                await db.execute(
                    select(QuickAd)
                    .options(selectinload(QuickAd.product))
                    .where(QuickAd.id == ad_id)
                )
            ).scalar_one_or_none()
            if ad is None:
                raise NotFoundError("Quick ad not found")

            price_changed = False
            if ad.product is not None and ad.promotional_price is not None:
                display_text = ad.product.name
                old_price = price_value(ad.product.current_price)
                if ad.update_price:
                    change = apply_promotional_price(
                        db, ad.product, ad.promotional_price, now, source="quick_ad"
                    )
                    price = price_value(change.new_price)
                    price_changed = True
                else:
                    price = price_value(
                        clamp_price(
                            float(ad.promotional_price), ad.product.min_price, ad.product.max_price
                        )
                    )
                kind = "product"
            else:
                display_text = ad.display_text or ad.name
                price = ad.display_price
                old_price = None
                kind = "text"

            ad.last_played_at = now
            ad.updated_at = now
            await db.commit()

            payload = {
                "id": ad.id,
                "displayText": display_text,
                "price": price,
                "oldPrice": old_price,
                "imageUrl": ad.image_url,
                "imageMode": ad.image_mode,
                "durationSeconds": ad.duration_seconds,
            }

        if price_changed:
            await self.events.price_update(1, now)
        await self.events.quick_ad_play(payload, now)
        metrics.quick_ads_played_total.labels(kind=kind).inc()
        logger.info(f"Quick ad played: {ad.name}")
        return payload
