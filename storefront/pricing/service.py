"""Persisted price changes: the periodic price tick and promotional overrides."""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.models import PriceHistory, Product, Setting
from storefront.errors import NotFoundError, ValidationError
from storefront.notify.events import EventPublisher
from storefront.pricing.accounting import (
    mark_window_consumed,
    record_sale,
    sales_this_window,
    set_total_sales,
)
from storefront.pricing.engine import (
    PricingInput,
    RandomSource,
    clamp_price,
    next_price,
    next_trend,
    validate_price_bounds,
    validate_pricing_config,
)
from storefront.config import settings
from storefront import metrics

logger = logging.getLogger(__name__)

PRICE_INTERVAL_KEY = "priceUpdateIntervalMinutes"


@dataclass
class PriceChange:
    product_id: int
    product_name: str
    old_price: Decimal
    new_price: Decimal


def apply_price(
    db: AsyncSession,
    product: Product,
    new_price: float,
    now: datetime,
    source: str,
) -> PriceChange:
    """Write a new price onto a product and append the history row (caller commits)."""
    old_price = product.current_price
    new_value = Decimal(str(new_price)).quantize(Decimal("0.01"))

    product.previous_price = old_price
    product.current_price = new_value
    product.trend = next_trend(float(old_price), float(new_value), product.trend)
    product.last_price_update = now
    product.updated_at = now
    db.add(PriceHistory(product_id=product.id, price=new_value, timestamp=now))

    metrics.record_price_change(source, float(old_price), float(new_value))
    return PriceChange(
        product_id=product.id,
        product_name=product.name,
        old_price=old_price,
        new_price=new_value,
    )


def apply_promotional_price(
    db: AsyncSession,
    product: Product,
    promotional_price: Decimal,
    now: datetime,
    source: str,
) -> PriceChange:
    """Clamp a highlight price into the product bounds and apply it."""
    clamped = clamp_price(float(promotional_price), product.min_price, product.max_price)
    change = apply_price(db, product, clamped, now, source)
    logger.info(
        f"Promotional price for {product.name}: {change.old_price} -> {change.new_price} ({source})"
    )
    return change


async def update_all_prices(
    db: AsyncSession,
    events: EventPublisher,
    now: Optional[datetime] = None,
    rng: Optional[RandomSource] = None,
    manual: bool = False,
) -> int:
    """
    Recompute prices for all active products from their sales windows.

    Products whose price does not change keep their sales baseline, so a
    window with sales that hit the max bound still counts next time.

    Returns:
        Number of products whose price changed
    """
    now = now or datetime.utcnow()
    rng = rng or random
    log_prefix = "[MANUAL]" if manual else "[AUTO]"

    result = await db.execute(select(Product).where(Product.status == "active"))
    products = result.scalars().all()

    if not products:
        logger.info(f"{log_prefix} No active products to update")
        return 0

    updated = 0
    for product in products:
        window = sales_this_window(product)
        new_price = next_price(PricingInput.from_product(product), window, rng)

        if new_price != float(product.current_price):
            apply_price(db, product, new_price, now, source="tick")
            mark_window_consumed(product)
            updated += 1

    await db.commit()

    unchanged = len(products) - updated
    metrics.price_tick_products.labels(result="updated").set(updated)
    metrics.price_tick_products.labels(result="unchanged").set(unchanged)
    logger.info(f"{log_prefix} Price update complete: {updated} updated, {unchanged} unchanged")

    if updated > 0:
        await events.price_update(updated, now)
    return updated


async def update_pricing_config(
    db: AsyncSession,
    pricing_mode: str,
    increase_percent: float,
    increase_random_percent: float,
    decrease_percent: float,
    decrease_random_percent: float,
) -> int:
    """Apply one pricing configuration to every active product."""
    validate_pricing_config(
        pricing_mode,
        increase_percent,
        increase_random_percent,
        decrease_percent,
        decrease_random_percent,
    )
    result = await db.execute(
        update(Product)
        .where(Product.status == "active")
        .values(
            pricing_mode=pricing_mode,
            price_increase_percent=Decimal(str(increase_percent)),
            price_increase_random_percent=Decimal(str(increase_random_percent)),
            price_decrease_percent=Decimal(str(decrease_percent)),
            price_decrease_random_percent=Decimal(str(decrease_random_percent)),
            updated_at=datetime.utcnow(),
        )
    )
    await db.commit()
    return result.rowcount or 0


async def update_product_bounds(
    db: AsyncSession,
    product_id: int,
    base_price: float,
    min_price: float,
    max_price: float,
    total_sales: int,
) -> Product:
    """Edit bounds and the displayed sales total of one product."""
    validate_price_bounds(base_price, min_price, max_price, total_sales)
    product = await get_product(db, product_id)

    product.base_price = Decimal(round(base_price))
    product.min_price = Decimal(round(min_price))
    product.max_price = Decimal(round(max_price))
    set_total_sales(product, total_sales)
    product.updated_at = datetime.utcnow()
    await db.commit()
    return product


async def record_order(db: AsyncSession, product_id: int, quantity: int) -> Product:
    """Count units sold for a product; the next price tick sees them in its window."""
    product = await get_product(db, product_id)
    record_sale(product, quantity)
    product.updated_at = datetime.utcnow()
    await db.commit()
    return product


async def get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def get_price_history(db: AsyncSession, product_id: int, limit: int = 10) -> list[PriceHistory]:
    """Last ``limit`` history rows, oldest first."""
    result = await db.execute(
        select(PriceHistory)
        .where(PriceHistory.product_id == product_id)
        .order_by(PriceHistory.timestamp.desc(), PriceHistory.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def get_price_interval_minutes(db: AsyncSession) -> int:
    """Price tick interval from the settings table, or the configured default."""
    result = await db.execute(select(Setting.value).where(Setting.key == PRICE_INTERVAL_KEY))
    value = result.scalar_one_or_none()
    if isinstance(value, dict) and isinstance(value.get("minutes"), int):
        return value["minutes"]
    return settings.default_price_interval_minutes


async def set_price_interval_minutes(db: AsyncSession, minutes: int) -> int:
    """Upsert the price tick interval (1..60 minutes)."""
    if not isinstance(minutes, int) or isinstance(minutes, bool) or not 1 <= minutes <= 60:
        raise ValidationError("Interval must be between 1 and 60 minutes")

    result = await db.execute(select(Setting).where(Setting.key == PRICE_INTERVAL_KEY))
    setting = result.scalar_one_or_none()
    if setting is None:
        db.add(Setting(key=PRICE_INTERVAL_KEY, value={"minutes": minutes}))
    else:
        setting.value = {"minutes": minutes}
        setting.updated_at = datetime.utcnow()
    await db.commit()
    logger.info(f"Price update interval set to {minutes} minute(s)")
    return minutes
