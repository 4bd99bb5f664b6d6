"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Product(Base):
    """Product shown on the display with a dynamically computed price."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)  # active, draft

    # Prices (whole currency units, stored as numeric)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    current_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    previous_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Dynamic pricing configuration
    pricing_mode: Mapped[str] = mapped_column(String(8), default="full", nullable=False)  # off, up, down, full
    price_increase_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("2.00"), nullable=False
    )
    price_increase_random_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("1.00"), nullable=False
    )
    price_decrease_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("1.00"), nullable=False
    )
    price_decrease_random_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("0.00"), nullable=False
    )

    # Sales window counters
    sales_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    manual_sales_adjustment: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sales_count_at_last_update: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    trend: Mapped[str] = mapped_column(String(8), default="down", nullable=False)  # up, down
    last_price_update: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    price_history: Mapped[list["PriceHistory"]] = relationship(
        "PriceHistory", back_populates="product", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("min_price < max_price", name="ck_product_price_bounds"),
        CheckConstraint(
            "sales_count_at_last_update <= sales_count", name="ck_product_sales_baseline"
        ),
    )


class PriceHistory(Base):
    """Append-only audit trail of applied prices."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="price_history")


class Video(Base):
    """Generated video asset played by campaigns."""

    __tablename__ = "videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # null until generated
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    aspect_ratio: Mapped[str] = mapped_column(String(16), default="landscape", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)  # pending, generating, ready, failed
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # provider generation id
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class VideoCampaign(Base):
    """Scheduled occupation of the display by a video, with an optional price highlight."""

    __tablename__ = "video_campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    video_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    countdown_seconds: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="scheduled", nullable=False, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Highlight (all three set together or not at all)
    product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    promotional_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    highlight_duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    video: Mapped["Video"] = relationship("Video")
    product: Mapped[Optional["Product"]] = relationship("Product")

    @property
    def has_highlight(self) -> bool:
        return self.product_id is not None and self.promotional_price is not None


class QuickAd(Base):
    """Instant overlay ad; "playing" is derived from last_played_at + duration."""

    __tablename__ = "quick_ads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)

    # Product-linked target
    product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    promotional_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    update_price: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Free-text target
    display_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_price: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # fullscreen, background
    duration_seconds: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    last_played_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped[Optional["Product"]] = relationship("Product")


class Setting(Base):
    """Key-value application configuration edited from the admin panel."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    value: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
