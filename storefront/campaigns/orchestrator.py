"""
Campaign state machine advanced by the ``process-campaigns`` tick.

Status flow: scheduled -> countdown -> playing -> completed, with cancelled
reachable from any non-terminal state. Every transition is a conditional
UPDATE on the expected current status, so a concurrent cancel or a second
worker never moves a campaign twice. Events are published only after the
transaction that caused them has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased, selectinload

from storefront.campaigns.states import (
    ACTIVE_STATUSES,
    ALLOWED_COUNTDOWNS,
    TERMINAL_STATUSES,
    CampaignStatus,
    ensure_transition,
)
from storefront.db.models import Product, Video, VideoCampaign
from storefront.errors import NotFoundError, ValidationError
from storefront.notify.events import CampaignEventType, EventPublisher, price_value
from storefront.pricing.service import PriceChange, apply_promotional_price
from storefront import metrics

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_SECONDS = 5


@dataclass
class TickResult:
    """Campaign ids moved by one tick, per transition."""

    promoted: Optional[int] = None
    started_playing: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.promoted or self.started_playing or self.completed)


def campaign_payload(campaign: VideoCampaign, include_countdown: bool = False) -> dict[str, Any]:
    video = campaign.video
    payload = {
        "id": campaign.id,
        "videoId": campaign.video_id,
        "videoUrl": video.url if video else None,
        "videoName": video.name if video else None,
        "videoDuration": video.duration if video else None,
    }
    if include_countdown:
        payload["countdownSeconds"] = campaign.countdown_seconds
    return payload


def highlight_payload(change: PriceChange, duration_seconds: Optional[int]) -> dict[str, Any]:
    return {
        "productId": change.product_id,
        "productName": change.product_name,
        "newPrice": price_value(change.new_price),
        "oldPrice": price_value(change.old_price),
        "durationSeconds": duration_seconds or DEFAULT_HIGHLIGHT_SECONDS,
    }


async def find_active_campaign(db: AsyncSession) -> Optional[int]:
    """Id of the campaign occupying the display (countdown or playing), if any."""
    result = await db.execute(
        select(VideoCampaign.id)
        .where(VideoCampaign.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    return result.scalar_one_or_none()


def _with_relations(stmt):
    return stmt.options(
        selectinload(VideoCampaign.video),
        selectinload(VideoCampaign.product),
    )


class CampaignOrchestrator:
    """Advances persisted campaigns and publishes display events."""

    def __init__(self, session_factory: async_sessionmaker, events: EventPublisher):
        self.session_factory = session_factory
        self.events = events

    async def _transition(
        self,
        db: AsyncSession,
        campaign: VideoCampaign,
        target: CampaignStatus,
        now: datetime,
        guard_no_active: bool = False,
        **values,
    ) -> bool:
        """
        Move a campaign to ``target`` if it is still in its loaded status.

        Args:
            guard_no_active: Also require that no other campaign is active,
                in the same statement (used when promoting).

        Returns:
            True if the row was updated
        """
        ensure_transition(campaign.status, target.value)

        conditions = [
            VideoCampaign.id == campaign.id,
            VideoCampaign.status == campaign.status,
        ]
        if guard_no_active:
            other = aliased(VideoCampaign)
            conditions.append(
                ~exists(select(other.id).where(other.status.in_(ACTIVE_STATUSES)))
            )

        result = await db.execute(
            update(VideoCampaign)
            .where(and_(*conditions))
            .values(status=target.value, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        campaign.status = target.value
        for key, value in values.items():
            setattr(campaign, key, value)
        metrics.campaign_transitions_total.labels(to_status=target.value).inc()
        return True

    async def tick(self, now: Optional[datetime] = None) -> TickResult:
        """Run one pass of the state machine.

        1. Promote the oldest due scheduled campaign, unless one is active
        2. Start playing campaigns whose countdown has elapsed
        3. Complete campaigns whose video has ended, applying highlights
        """
        now = now or datetime.utcnow()
        result = TickResult()

        async with self.session_factory() as db:
            active_id = await find_active_campaign(db)
            if active_id is None:
                result.promoted = await self._promote_next(db, now)
            else:
                logger.debug(f"Campaign {active_id} is active; not promoting")

            result.started_playing = await self._finish_countdowns(db, now)
            result.completed = await self._complete_finished(db, now)

        return result

    async def _promote_next(self, db: AsyncSession, now: datetime) -> Optional[int]:
        query = _with_relations(
            select(VideoCampaign)
            .where(
                VideoCampaign.status == CampaignStatus.SCHEDULED.value,
                VideoCampaign.scheduled_at <= now,
            )
            .order_by(VideoCampaign.scheduled_at, VideoCampaign.id)
            .limit(1)
        )
        campaign = (await db.execute(query)).scalar_one_or_none()
        if campaign is None:
            return None

        skip_countdown = campaign.countdown_seconds == 0
        target = CampaignStatus.PLAYING if skip_countdown else CampaignStatus.COUNTDOWN

        promoted = await self._transition(
            db, campaign, target, now, guard_no_active=True, started_at=now
        )
        await db.commit()
        if not promoted:
            logger.info(f"Campaign {campaign.id} was not promoted (changed concurrently)")
            return None

        if skip_countdown:
            logger.info(f"Campaign {campaign.id} started playing (no countdown)")
            await self.events.campaign_event(
                CampaignEventType.VIDEO_PLAY, campaign_payload(campaign), now
            )
        else:
            logger.info(f"Campaign {campaign.id} countdown started ({campaign.countdown_seconds}s)")
            await self.events.campaign_event(
                CampaignEventType.COUNTDOWN_START,
                campaign_payload(campaign, include_countdown=True),
                now,
            )
        return campaign.id

    async def _finish_countdowns(self, db: AsyncSession, now: datetime) -> list[int]:
        query = _with_relations(
            select(VideoCampaign).where(VideoCampaign.status == CampaignStatus.COUNTDOWN.value)
        )
        campaigns = (await db.execute(query)).scalars().all()

        started = []
        for campaign in campaigns:
            if campaign.started_at is None:
                continue
            if now < campaign.started_at + timedelta(seconds=campaign.countdown_seconds):
                continue

            moved = await self._transition(db, campaign, CampaignStatus.PLAYING, now)
            await db.commit()
            if not moved:
                continue

            logger.info(f"Campaign {campaign.id} started playing")
            started.append(campaign.id)
            await self.events.campaign_event(
                CampaignEventType.VIDEO_PLAY, campaign_payload(campaign), now
            )
        return started

    async def _complete_finished(self, db: AsyncSession, now: datetime) -> list[int]:
        query = _with_relations(
            select(VideoCampaign).where(VideoCampaign.status == CampaignStatus.PLAYING.value)
        )
        campaigns = (await db.execute(query)).scalars().all()

        completed = []
        for campaign in campaigns:
            duration = campaign.video.duration if campaign.video else None
            if campaign.started_at is None or not duration:
                continue

            video_end = campaign.started_at + timedelta(
                seconds=campaign.countdown_seconds + duration
            )
            if now < video_end:
                continue

            # Completion and the highlight price commit together
            moved = await self._transition(
                db, campaign, CampaignStatus.COMPLETED, now, completed_at=now
            )
            if not moved:
                continue

            change: Optional[PriceChange] = None
            if campaign.has_highlight and campaign.product is not None:
                change = apply_promotional_price(
                    db,
                    campaign.product,
                    campaign.promotional_price,
                    now,
                    source="campaign",
                )
            await db.commit()

            logger.info(f"Campaign {campaign.id} completed")
            completed.append(campaign.id)

            highlight = (
                highlight_payload(change, campaign.highlight_duration_seconds) if change else None
            )
            await self.events.campaign_event(
                CampaignEventType.VIDEO_END,
                {"id": campaign.id, "videoId": campaign.video_id, "highlight": highlight},
                now,
            )
            if change:
                await self.events.price_update(1, now)
        return completed

    async def cancel(self, campaign_id: int, now: Optional[datetime] = None) -> VideoCampaign:
        """Force a non-terminal campaign to cancelled.

        Raises:
            NotFoundError: campaign missing or already completed/cancelled
        """
        now = now or datetime.utcnow()
        async with self.session_factory() as db:
            campaign = (
                await db.execute(
                    _with_relations(select(VideoCampaign).where(VideoCampaign.id == campaign_id))
                )
            ).scalar_one_or_none()
            if campaign is None or campaign.status in TERMINAL_STATUSES:
                raise NotFoundError("Campaign not found")

            moved = await self._transition(db, campaign, CampaignStatus.CANCELLED, now)
            await db.commit()
            if not moved:
                raise NotFoundError("Campaign not found")

        logger.info(f"Campaign cancelled: {campaign_id}")
        await self.events.campaign_event(
            CampaignEventType.CANCELLED, {"id": campaign.id, "videoId": campaign.video_id}, now
        )
        return campaign

    async def create_campaign(
        self,
        video_id: int,
        scheduled_at: datetime,
        countdown_seconds: int = 60,
        product_id: Optional[int] = None,
        promotional_price: Optional[Decimal] = None,
        highlight_duration_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> VideoCampaign:
        """Validate and insert a scheduled campaign."""
        now = now or datetime.utcnow()
        if countdown_seconds not in ALLOWED_COUNTDOWNS:
            raise ValidationError(
                f"countdown_seconds must be one of {', '.join(map(str, ALLOWED_COUNTDOWNS))}"
            )
        if scheduled_at <= now:
            raise ValidationError("Scheduled time must be in the future")
        if product_id is not None and (promotional_price is None or promotional_price <= 0):
            raise ValidationError("A highlighted product needs a positive promotional price")
        if promotional_price is not None and product_id is None:
            raise ValidationError("A promotional price needs a product")
        if highlight_duration_seconds is not None and not 3 <= highlight_duration_seconds <= 15:
            raise ValidationError("Highlight duration must be between 3 and 15 seconds")

        async with self.session_factory() as db:
            if await db.get(Video, video_id) is None:
                raise NotFoundError("Video not found")
            if product_id is not None and await db.get(Product, product_id) is None:
                raise NotFoundError("Product not found")

            campaign = VideoCampaign(
                video_id=video_id,
                scheduled_at=scheduled_at,
                countdown_seconds=countdown_seconds,
                status=CampaignStatus.SCHEDULED.value,
                product_id=product_id,
                promotional_price=promotional_price,
                highlight_duration_seconds=(
                    highlight_duration_seconds or DEFAULT_HIGHLIGHT_SECONDS
                    if product_id is not None
                    else None
                ),
                created_at=now,
                updated_at=now,
            )
            db.add(campaign)
            await db.commit()
            await db.refresh(campaign)

        logger.info(f"Campaign created: {campaign.id}")
        return campaign

    async def list_upcoming(self) -> list[VideoCampaign]:
        async with self.session_factory() as db:
            result = await db.execute(
                _with_relations(
                    select(VideoCampaign)
                    .where(VideoCampaign.status == CampaignStatus.SCHEDULED.value)
                    .order_by(VideoCampaign.scheduled_at)
                )
            )
            return list(result.scalars().all())
