"""API application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from storefront import __version__
from storefront.api.routes import campaigns, display, pricing, quick_ads, stream, videos
from storefront.campaigns.orchestrator import CampaignOrchestrator
from storefront.campaigns.quick_ads import QuickAdDispatcher
from storefront.config import settings
from storefront.db.models import Base
from storefront.db.session import AsyncSessionLocal, engine
from storefront.errors import StorefrontError
from storefront.logging_config import setup_logging
from storefront.notify.events import CHANNELS, EventPublisher
from storefront.notify.hub import NotificationHub
from storefront.notify.pubsub import InProcessPubSub, PostgresRelay
from storefront.worker.queue import JobQueue

setup_logging(process_name="api")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting storefront display API...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Streams subscribe to the local fan-out; the relay feeds it from LISTEN
    local = InProcessPubSub()
    relay = PostgresRelay(local, CHANNELS)
    await relay.start_with_retry()

    hubs = {channel: NotificationHub(channel) for channel in CHANNELS}
    for hub in hubs.values():
        hub.attach(local)

    events = EventPublisher(relay)
    queue = JobQueue()

    app.state.hubs = hubs
    app.state.queue = queue
    app.state.orchestrator = CampaignOrchestrator(AsyncSessionLocal, events)
    app.state.dispatcher = QuickAdDispatcher(AsyncSessionLocal, events)

    yield

    # Shutdown
    logger.info("Shutting down...")
    for hub in hubs.values():
        hub.detach(local)
        hub.close()
    await relay.close()
    await queue.close()
    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Storefront Display",
    description="Live pricing, video campaigns and quick ads for in-store displays",
    version=__version__,
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health", "/api/stream/.*"],
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include API routes
app.include_router(stream.router)
app.include_router(display.router)
app.include_router(campaigns.router)
app.include_router(quick_ads.router)
app.include_router(videos.router)
app.include_router(pricing.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "storefront.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
