"""Pricing, sales and settings routes."""

import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_database, get_queue
from storefront.notify.events import price_value
from storefront.pricing.service import (
    get_price_history,
    get_price_interval_minutes,
    get_product,
    record_order,
    set_price_interval_minutes,
    update_pricing_config,
    update_product_bounds,
)
from storefront.worker.queue import JobQueue
from storefront.worker.tasks import UPDATE_PRICES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pricing"])


class PricingConfigUpdate(BaseModel):
    pricing_mode: str
    price_increase_percent: float
    price_increase_random_percent: float
    price_decrease_percent: float
    price_decrease_random_percent: float


class PriceIntervalUpdate(BaseModel):
    minutes: int


class SaleCreate(BaseModel):
    quantity: int = 1


class ProductPricingUpdate(BaseModel):
    base_price: float
    min_price: float
    max_price: float
    total_sales: int


class PriceHistoryResponse(BaseModel):
    price: float
    timestamp: datetime

    class Config:
        from_attributes = True


@router.post("/api/pricing/update-now", status_code=202)
async def trigger_price_update(queue: JobQueue = Depends(get_queue)):
    """Queue an immediate price update."""
    job_id = await queue.add_job(UPDATE_PRICES, {"manual": True})
    logger.info("Manual price update queued")
    return {"success": True, "jobId": job_id}


@router.put("/api/pricing/config")
async def set_pricing_config(
    data: PricingConfigUpdate, db: AsyncSession = Depends(get_database)
):
    """Apply one pricing configuration to all active products."""
    count = await update_pricing_config(
        db,
        data.pricing_mode,
        data.price_increase_percent,
        data.price_increase_random_percent,
        data.price_decrease_percent,
        data.price_decrease_random_percent,
    )
    return {"success": True, "updated": count}


@router.get("/api/settings/price-interval")
async def read_price_interval(db: AsyncSession = Depends(get_database)):
    return {"minutes": await get_price_interval_minutes(db)}


@router.put("/api/settings/price-interval")
async def write_price_interval(
    data: PriceIntervalUpdate, db: AsyncSession = Depends(get_database)
):
    """Store the price tick interval; the worker picks it up on its next reload."""
    minutes = await set_price_interval_minutes(db, data.minutes)
    return {"success": True, "minutes": minutes}


@router.post("/api/products/{product_id}/sales", status_code=201)
async def create_sale(
    product_id: int, data: SaleCreate, db: AsyncSession = Depends(get_database)
):
    """Record units sold."""
    product = await record_order(db, product_id, data.quantity)
    return {"productId": product.id, "salesCount": product.sales_count}


@router.put("/api/products/{product_id}/pricing")
async def set_product_pricing(
    product_id: int,
    data: ProductPricingUpdate,
    db: AsyncSession = Depends(get_database),
):
    """Edit price bounds and the displayed sales total."""
    product = await update_product_bounds(
        db, product_id, data.base_price, data.min_price, data.max_price, data.total_sales
    )
    return {
        "id": product.id,
        "basePrice": price_value(product.base_price),
        "minPrice": price_value(product.min_price),
        "maxPrice": price_value(product.max_price),
        "currentPrice": price_value(product.current_price),
        "totalSales": product.sales_count + product.manual_sales_adjustment,
    }


@router.get("/api/products/{product_id}/price-history", response_model=List[PriceHistoryResponse])
async def price_history(
    product_id: int, limit: int = 10, db: AsyncSession = Depends(get_database)
):
    """Most recent price changes, oldest first."""
    await get_product(db, product_id)
    return await get_price_history(db, product_id, limit=min(max(limit, 1), 100))
