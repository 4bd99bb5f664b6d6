"""Shared fixtures: in-memory SQLite database and a recording event channel."""

import json
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.db.models import Base, Product, Video
from storefront.notify.events import EventPublisher
from storefront.notify.pubsub import InProcessPubSub


class FixedRandom:
    """Random source that always returns the same draw."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingChannel(InProcessPubSub):
    """In-process pub/sub that also keeps every published message."""

    def __init__(self):
        super().__init__()
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, channel: str, payload: str) -> None:
        self.messages.append((channel, json.loads(payload)))
        await super().publish(channel, payload)

    def on(self, channel: str) -> list[dict]:
        return [body for name, body in self.messages if name == channel]


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def events(channel):
    return EventPublisher(channel)


async def create_product(session_factory, **overrides) -> Product:
    values = dict(
        name="Espresso",
        base_price=Decimal("400"),
        min_price=Decimal("300"),
        max_price=Decimal("600"),
        current_price=Decimal("400"),
        previous_price=Decimal("400"),
        pricing_mode="full",
        price_increase_percent=Decimal("2"),
        price_increase_random_percent=Decimal("1"),
        price_decrease_percent=Decimal("1"),
        price_decrease_random_percent=Decimal("0"),
    )
    values.update(overrides)
    async with session_factory() as db:
        product = Product(**values)
        db.add(product)
        await db.commit()
        await db.refresh(product)
    return product


async def create_video(session_factory, duration: int = 20, **overrides) -> Video:
    values = dict(
        name="Autumn promo",
        prompt="Steam rising from a cup",
        url="https://cdn.example.com/autumn.mp4",
        duration=duration,
        status="ready",
    )
    values.update(overrides)
    async with session_factory() as db:
        video = Video(**values)
        db.add(video)
        await db.commit()
        await db.refresh(video)
    return video


def at(seconds: float) -> datetime:
    """Fixed test clock: 2026-01-01 12:00:00 UTC plus ``seconds``."""
    return datetime(2026, 1, 1, 12, 0, 0) + timedelta(seconds=seconds)
