"""Event payloads published on the notification channels."""

import json
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from storefront.notify.pubsub import Publisher

logger = logging.getLogger(__name__)

CAMPAIGN_CHANNEL = "campaign_update"
PRICE_CHANNEL = "price_update"
CHANNELS = (CAMPAIGN_CHANNEL, PRICE_CHANNEL)


class CampaignEventType(str, Enum):
    COUNTDOWN_START = "COUNTDOWN_START"
    VIDEO_PLAY = "VIDEO_PLAY"
    VIDEO_END = "VIDEO_END"
    CANCELLED = "CANCELLED"
    QUICK_AD_PLAY = "QUICK_AD_PLAY"


def price_value(price: Optional[Decimal | float]) -> Optional[int | float]:
    """JSON-friendly price: whole units as int, anything else as float."""
    if price is None:
        return None
    value = float(price)
    return int(value) if value.is_integer() else value


def isoformat(ts: datetime) -> str:
    return ts.isoformat() + "Z" if ts.tzinfo is None else ts.isoformat()


class EventPublisher:
    """Serializes domain events and hands them to a ``Publisher``."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    async def _send(self, channel: str, body: dict[str, Any]) -> None:
        await self.publisher.publish(channel, json.dumps(body, default=str))

    async def campaign_event(
        self,
        event_type: CampaignEventType,
        campaign: dict[str, Any],
        now: datetime,
    ) -> None:
        await self._send(
            CAMPAIGN_CHANNEL,
            {"type": event_type.value, "campaign": campaign, "timestamp": isoformat(now)},
        )
        logger.info(f"Sent {event_type.value} for campaign {campaign.get('id')}")

    async def quick_ad_play(self, quick_ad: dict[str, Any], now: datetime) -> None:
        await self._send(
            CAMPAIGN_CHANNEL,
            {
                "type": CampaignEventType.QUICK_AD_PLAY.value,
                "quickAd": quick_ad,
                "timestamp": isoformat(now),
            },
        )
        logger.info(f"Sent QUICK_AD_PLAY for quick ad {quick_ad.get('id')}")

    async def price_update(self, count: int, now: datetime) -> None:
        """Coarse "prices changed, re-fetch" signal."""
        await self._send(PRICE_CHANNEL, {"count": count, "timestamp": isoformat(now)})
        logger.info(f"Sent price_update ({count} product(s))")
