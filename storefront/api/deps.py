"""FastAPI dependencies."""

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.campaigns.orchestrator import CampaignOrchestrator
from storefront.campaigns.quick_ads import QuickAdDispatcher
from storefront.db.session import get_db
from storefront.notify.events import CAMPAIGN_CHANNEL, PRICE_CHANNEL
from storefront.notify.hub import NotificationHub
from storefront.worker.queue import JobQueue


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_hub(request: Request, channel: str) -> NotificationHub:
    return request.app.state.hubs[channel]


def get_campaign_hub(request: Request) -> NotificationHub:
    return get_hub(request, CAMPAIGN_CHANNEL)


def get_price_hub(request: Request) -> NotificationHub:
    return get_hub(request, PRICE_CHANNEL)


def get_orchestrator(request: Request) -> CampaignOrchestrator:
    return request.app.state.orchestrator


def get_dispatcher(request: Request) -> QuickAdDispatcher:
    return request.app.state.dispatcher


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue
