"""Server-sent event streams for display clients."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from storefront.api.deps import get_campaign_hub, get_price_hub
from storefront.notify.hub import NotificationHub, QueueClientStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stream", tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def event_source(
    hub: NotificationHub,
    request: Request,
    client: Optional[QueueClientStream] = None,
):
    """Yield chunks written to a registered stream until the client goes away.

    A stream pruned by the hub is closed; whatever it already queued is
    flushed and the response ends so the display reconnects.
    """
    client = client or QueueClientStream()
    hub.add_client(client)
    try:
        while not (client.closed and client.queue.empty()):
            try:
                chunk = await asyncio.wait_for(client.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    break
                continue
            yield chunk
    finally:
        client.close()
        hub.remove_client(client)


def sse_response(hub: NotificationHub, request: Request) -> StreamingResponse:
    return StreamingResponse(
        event_source(hub, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/campaigns")
async def stream_campaigns(request: Request, hub: NotificationHub = Depends(get_campaign_hub)):
    """Campaign and quick-ad events."""
    return sse_response(hub, request)


@router.get("/prices")
async def stream_prices(request: Request, hub: NotificationHub = Depends(get_price_hub)):
    """Price update notifications."""
    return sse_response(hub, request)
