"""Tests for the persisted price tick and sales accounting."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from storefront.db.models import PriceHistory, Product
from storefront.errors import NotFoundError, ValidationError
from storefront.pricing.accounting import (
    mark_window_consumed,
    record_sale,
    sales_this_window,
    set_total_sales,
)
from storefront.pricing.service import (
    get_price_history,
    get_price_interval_minutes,
    record_order,
    set_price_interval_minutes,
    update_all_prices,
    update_pricing_config,
    update_product_bounds,
)
from storefront.notify.events import PRICE_CHANNEL

from conftest import FixedRandom, at, create_product


class Counters:
    def __init__(self, sales_count=0, manual_sales_adjustment=0, sales_count_at_last_update=0):
        self.sales_count = sales_count
        self.manual_sales_adjustment = manual_sales_adjustment
        self.sales_count_at_last_update = sales_count_at_last_update


def test_sales_window_includes_manual_adjustment():
    product = Counters(sales_count=10, manual_sales_adjustment=3, sales_count_at_last_update=8)
    assert sales_this_window(product) == 5


def test_window_baseline_moves_to_real_counter():
    product = Counters(sales_count=10, manual_sales_adjustment=0, sales_count_at_last_update=4)
    mark_window_consumed(product)
    assert product.sales_count_at_last_update == 10
    assert sales_this_window(product) == 0


def test_record_sale_is_monotonic():
    product = Counters(sales_count=2)
    record_sale(product, 3)
    assert product.sales_count == 5
    with pytest.raises(ValidationError):
        record_sale(product, 0)
    with pytest.raises(ValidationError):
        record_sale(product, -1)
    assert product.sales_count == 5


def test_set_total_sales_keeps_real_counter():
    product = Counters(sales_count=7)
    set_total_sales(product, 20)
    assert product.sales_count == 7
    assert product.manual_sales_adjustment == 13
    with pytest.raises(ValidationError):
        set_total_sales(product, -1)


@pytest.mark.asyncio
async def test_tick_raises_price_after_sales(session_factory, events, channel):
    product = await create_product(session_factory)
    async with session_factory() as db:
        await record_order(db, product.id, 3)

    async with session_factory() as db:
        updated = await update_all_prices(db, events, now=at(0), rng=FixedRandom(0.5))
    assert updated == 1

    async with session_factory() as db:
        stored = await db.get(Product, product.id)
        assert stored.current_price == Decimal("410")
        assert stored.previous_price == Decimal("400")
        assert stored.trend == "up"
        assert stored.sales_count == 3
        assert stored.sales_count_at_last_update == 3
        assert stored.last_price_update == at(0)

        history = await get_price_history(db, product.id)
        assert [h.price for h in history] == [Decimal("410")]

    messages = channel.on(PRICE_CHANNEL)
    assert len(messages) == 1
    assert messages[0]["count"] == 1


@pytest.mark.asyncio
async def test_tick_without_change_keeps_baseline_and_stays_silent(session_factory, events, channel):
    product = await create_product(session_factory, current_price=Decimal("600"))
    async with session_factory() as db:
        await record_order(db, product.id, 2)

    async with session_factory() as db:
        updated = await update_all_prices(db, events, now=at(0), rng=FixedRandom(0.5))
    assert updated == 0

    async with session_factory() as db:
        stored = await db.get(Product, product.id)
        assert stored.current_price == Decimal("600")
        assert stored.sales_count_at_last_update == 0
        history = (await db.execute(select(PriceHistory))).scalars().all()
        assert history == []

    assert channel.on(PRICE_CHANNEL) == []


@pytest.mark.asyncio
async def test_tick_skips_inactive_products(session_factory, events):
    await create_product(session_factory, status="draft")
    async with session_factory() as db:
        assert await update_all_prices(db, events, now=at(0), rng=FixedRandom(0.5)) == 0


@pytest.mark.asyncio
async def test_history_is_oldest_first_and_limited(session_factory, events):
    product = await create_product(session_factory)
    for i in range(3):
        async with session_factory() as db:
            await update_all_prices(db, events, now=at(i * 60), rng=FixedRandom(0.0))

    async with session_factory() as db:
        history = await get_price_history(db, product.id, limit=2)
    assert [h.timestamp for h in history] == [at(60), at(120)]
    assert history[0].price > history[1].price


@pytest.mark.asyncio
async def test_record_order_unknown_product(session_factory):
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await record_order(db, 999, 1)


@pytest.mark.asyncio
async def test_update_pricing_config_applies_to_active_products(session_factory):
    active = await create_product(session_factory)
    draft = await create_product(session_factory, name="Draft", status="draft")

    async with session_factory() as db:
        count = await update_pricing_config(db, "up", 3.0, 0.5, 1.5, 0.0)
    assert count == 1

    async with session_factory() as db:
        assert (await db.get(Product, active.id)).pricing_mode == "up"
        assert (await db.get(Product, draft.id)).pricing_mode == "full"

    async with session_factory() as db:
        with pytest.raises(ValidationError):
            await update_pricing_config(db, "full", 20.0, 0.5, 1.5, 0.0)


@pytest.mark.asyncio
async def test_update_product_bounds(session_factory):
    product = await create_product(session_factory, sales_count=4, sales_count_at_last_update=4)
    async with session_factory() as db:
        updated = await update_product_bounds(db, product.id, 450, 350, 700, total_sales=10)
    assert updated.min_price == Decimal("350")
    assert updated.manual_sales_adjustment == 6

    async with session_factory() as db:
        with pytest.raises(ValidationError):
            await update_product_bounds(db, product.id, 450, 700, 350, total_sales=10)


@pytest.mark.asyncio
async def test_price_interval_setting(session_factory):
    async with session_factory() as db:
        assert await get_price_interval_minutes(db) == 1
        assert await set_price_interval_minutes(db, 15) == 15
    async with session_factory() as db:
        assert await get_price_interval_minutes(db) == 15
        await set_price_interval_minutes(db, 30)
    async with session_factory() as db:
        assert await get_price_interval_minutes(db) == 30

    async with session_factory() as db:
        for bad in (0, 61, True):
            with pytest.raises(ValidationError):
                await set_price_interval_minutes(db, bad)
