"""Tests for quick ad playback."""

from decimal import Decimal

import pytest

from storefront.campaigns.display import get_display_state
from storefront.campaigns.orchestrator import CampaignOrchestrator
from storefront.campaigns.quick_ads import QuickAdDispatcher, is_playing, remaining_seconds
from storefront.db.models import Product, QuickAd, VideoCampaign
from storefront.errors import ConflictError, NotFoundError, ValidationError
from storefront.notify.events import CAMPAIGN_CHANNEL, PRICE_CHANNEL

from conftest import at, create_product, create_video


@pytest.fixture
def dispatcher(session_factory, events):
    return QuickAdDispatcher(session_factory, events)


@pytest.mark.asyncio
async def test_play_rejected_while_campaign_is_playing(session_factory, events, channel, dispatcher):
    orchestrator = CampaignOrchestrator(session_factory, events)
    video = await create_video(session_factory)
    await orchestrator.create_campaign(video.id, at(10), countdown_seconds=0, now=at(0))
    await orchestrator.tick(now=at(10))
    channel.messages.clear()

    ad = await dispatcher.create(name="Flash", duration_seconds=10, display_text="Free refills")

    with pytest.raises(ConflictError):
        await dispatcher.play(ad.id, now=at(12))

    async with session_factory() as db:
        assert (await db.get(QuickAd, ad.id)).last_played_at is None
    assert channel.messages == []


@pytest.mark.asyncio
async def test_free_text_ad(session_factory, channel, dispatcher):
    ad = await dispatcher.create(
        name="Happy hour",
        duration_seconds=8,
        display_text="Two for one",
        display_price="2x1",
        image_url="https://cdn.example.com/hh.png",
    )
    assert ad.image_mode == "background"

    payload = await dispatcher.play(ad.id, now=at(0))

    assert payload == {
        "id": ad.id,
        "displayText": "Two for one",
        "price": "2x1",
        "oldPrice": None,
        "imageUrl": "https://cdn.example.com/hh.png",
        "imageMode": "background",
        "durationSeconds": 8,
    }
    event = channel.on(CAMPAIGN_CHANNEL)[0]
    assert event["type"] == "QUICK_AD_PLAY"
    assert event["quickAd"] == payload
    assert channel.on(PRICE_CHANNEL) == []


@pytest.mark.asyncio
async def test_product_ad_shows_clamped_price_without_applying(session_factory, channel, dispatcher):
    product = await create_product(session_factory, max_price=Decimal("500"))
    ad = await dispatcher.create(
        name="Espresso deal",
        duration_seconds=10,
        product_id=product.id,
        promotional_price=Decimal("550"),
    )

    payload = await dispatcher.play(ad.id, now=at(0))

    assert payload["displayText"] == "Espresso"
    assert payload["price"] == 500
    assert payload["oldPrice"] == 400
    async with session_factory() as db:
        assert (await db.get(Product, product.id)).current_price == Decimal("400")
    assert channel.on(PRICE_CHANNEL) == []


@pytest.mark.asyncio
async def test_product_ad_with_update_price_applies_it(session_factory, channel, dispatcher):
    product = await create_product(session_factory)
    ad = await dispatcher.create(
        name="Espresso drop",
        duration_seconds=10,
        product_id=product.id,
        promotional_price=Decimal("350"),
        update_price=True,
    )

    payload = await dispatcher.play(ad.id, now=at(0))

    assert payload["price"] == 350
    assert payload["oldPrice"] == 400
    async with session_factory() as db:
        stored = await db.get(Product, product.id)
        assert stored.current_price == Decimal("350")
        assert stored.trend == "down"
    assert len(channel.on(PRICE_CHANNEL)) == 1
    # Price notification goes out before the ad itself
    assert [name for name, _ in channel.messages] == [PRICE_CHANNEL, CAMPAIGN_CHANNEL]


@pytest.mark.asyncio
async def test_play_unknown_ad(dispatcher):
    with pytest.raises(NotFoundError):
        await dispatcher.play(404, now=at(0))


@pytest.mark.asyncio
async def test_create_validation(session_factory, dispatcher):
    with pytest.raises(ValidationError):
        await dispatcher.create(name=" ", duration_seconds=10, display_text="x")
    with pytest.raises(ValidationError):
        await dispatcher.create(name="Short", duration_seconds=2, display_text="x")
    with pytest.raises(ValidationError):
        await dispatcher.create(name="Empty", duration_seconds=10)
    with pytest.raises(ValidationError):
        await dispatcher.create(name="No price", duration_seconds=10, product_id=1)
    with pytest.raises(ValidationError):
        await dispatcher.create(
            name="Bad mode",
            duration_seconds=10,
            image_url="https://cdn.example.com/a.png",
            image_mode="tiled",
        )
    with pytest.raises(NotFoundError):
        await dispatcher.create(
            name="Ghost", duration_seconds=10, product_id=999, promotional_price=Decimal("10")
        )


@pytest.mark.asyncio
async def test_playing_window_and_display_state(session_factory, dispatcher):
    ad = await dispatcher.create(name="Flash", duration_seconds=10, display_text="Flash sale")
    await dispatcher.play(ad.id, now=at(0))

    async with session_factory() as db:
        stored = await db.get(QuickAd, ad.id)
        assert is_playing(stored, at(9))
        assert not is_playing(stored, at(10))
        assert remaining_seconds(stored, at(4)) == 6

        state = await get_display_state(db, now=at(4))
        assert state["type"] == "quick_ad"
        assert state["quickAd"]["displayText"] == "Flash sale"
        assert state["quickAd"]["durationSeconds"] == 6

        assert await get_display_state(db, now=at(11)) == {"type": "idle"}


@pytest.mark.asyncio
async def test_play_rejected_during_countdown(session_factory, events, channel, dispatcher):
    orchestrator = CampaignOrchestrator(session_factory, events)
    video = await create_video(session_factory)
    campaign = await orchestrator.create_campaign(
        video.id, at(10), countdown_seconds=30, now=at(0)
    )
    await orchestrator.tick(now=at(10))
    async with session_factory() as db:
        assert (await db.get(VideoCampaign, campaign.id)).status == "countdown"
    channel.messages.clear()

    ad = await dispatcher.create(name="Flash", duration_seconds=10, display_text="Free refills")

    with pytest.raises(ConflictError):
        await dispatcher.play(ad.id, now=at(15))

    async with session_factory() as db:
        assert (await db.get(QuickAd, ad.id)).last_played_at is None
    assert channel.messages == []
