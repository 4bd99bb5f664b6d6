"""
Price computation for the dynamic pricing algorithm.

Everything here is pure: no database access and no shared state. The only
non-determinism is a single random draw per call, taken from an injectable
``random.Random``-like source so tests can pin it.
"""

import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol

from storefront.errors import ValidationError

PRICING_MODES = ("off", "up", "down", "full")


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class PricingInput:
    """Snapshot of the product fields the algorithm reads."""

    current_price: float
    min_price: float
    max_price: float
    pricing_mode: str
    increase_percent: float
    increase_random_percent: float
    decrease_percent: float
    decrease_random_percent: float

    @classmethod
    def from_product(cls, product) -> "PricingInput":
        return cls(
            current_price=float(product.current_price),
            min_price=float(product.min_price),
            max_price=float(product.max_price),
            pricing_mode=product.pricing_mode,
            increase_percent=float(product.price_increase_percent),
            increase_random_percent=float(product.price_increase_random_percent),
            decrease_percent=float(product.price_decrease_percent),
            decrease_random_percent=float(product.price_decrease_random_percent),
        )


def round_price(value: float) -> int:
    """Round to a whole currency unit, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_price(price: float, min_price: Optional[float], max_price: Optional[float]) -> float:
    """Clamp a price into [min_price, max_price]; missing bounds are ignored."""
    if min_price is not None:
        price = max(price, float(min_price))
    if max_price is not None:
        price = min(price, float(max_price))
    return price


def next_price(
    product: PricingInput,
    sales_this_window: int,
    rng: Optional[RandomSource] = None,
) -> float:
    """
    Compute the next price for a product.

    Algorithm:
    1. Mode "off" returns the current price.
    2. Sales > 0 increases the price unless the mode is "down":
       base increase + random(0, 1) x random increase.
    3. Otherwise decreases the price unless the mode is "up":
       base decrease + random(0, 1) x random decrease.
    4. Clamp to [min, max] and round to a whole unit.

    No-op branches return the current price as-is (no clamping or rounding).

    Args:
        product: Pricing snapshot
        sales_this_window: Units sold since the last recomputation
        rng: Random source, defaults to the module-level ``random``

    Returns:
        New price
    """
    rng = rng or random

    if product.pricing_mode == "off":
        return product.current_price

    if sales_this_window > 0:
        if product.pricing_mode == "down":
            return product.current_price
        pct = product.increase_percent + rng.random() * product.increase_random_percent
        price = product.current_price * (1 + pct / 100)
    else:
        if product.pricing_mode == "up":
            return product.current_price
        pct = product.decrease_percent + rng.random() * product.decrease_random_percent
        price = product.current_price * (1 - pct / 100)

    price = clamp_price(price, product.min_price, product.max_price)
    return float(round_price(price))


def next_trend(old_price: float, new_price: float, current_trend: str) -> str:
    """Trend indicator for the display arrow; unchanged when the price is."""
    if new_price > old_price:
        return "up"
    if new_price < old_price:
        return "down"
    return current_trend


def validate_pricing_config(
    pricing_mode: str,
    increase_percent: float,
    increase_random_percent: float,
    decrease_percent: float,
    decrease_random_percent: float,
) -> None:
    """Reject out-of-range pricing configuration before it is written."""
    if pricing_mode not in PRICING_MODES:
        raise ValidationError(f"Invalid pricing mode: {pricing_mode}")
    if not 0.1 <= increase_percent <= 10:
        raise ValidationError("price_increase_percent must be between 0.1 and 10")
    if not 0 <= increase_random_percent <= 5:
        raise ValidationError("price_increase_random_percent must be between 0 and 5")
    if not 0.1 <= decrease_percent <= 10:
        raise ValidationError("price_decrease_percent must be between 0.1 and 10")
    if not 0 <= decrease_random_percent <= 5:
        raise ValidationError("price_decrease_random_percent must be between 0 and 5")


def validate_price_bounds(
    base_price: float,
    min_price: float,
    max_price: float,
    total_sales: Optional[int] = None,
) -> None:
    """Reject inconsistent price bounds or negative sales totals."""
    if min_price <= 0 or max_price <= 0 or base_price <= 0:
        raise ValidationError("All prices must be greater than 0")
    if min_price >= max_price:
        raise ValidationError("Minimum price must be lower than maximum price")
    if total_sales is not None and total_sales < 0:
        raise ValidationError("Sales count cannot be negative")
