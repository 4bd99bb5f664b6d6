"""Tests for the pure pricing algorithm."""

import random

import pytest

from storefront.errors import ValidationError
from storefront.pricing.engine import (
    PricingInput,
    clamp_price,
    next_price,
    next_trend,
    round_price,
    validate_price_bounds,
    validate_pricing_config,
)

from conftest import FixedRandom


def make_input(**overrides) -> PricingInput:
    values = dict(
        current_price=400.0,
        min_price=300.0,
        max_price=600.0,
        pricing_mode="full",
        increase_percent=2.0,
        increase_random_percent=1.0,
        decrease_percent=1.0,
        decrease_random_percent=0.0,
    )
    values.update(overrides)
    return PricingInput(**values)


def test_sales_raise_price_within_expected_band():
    product = make_input()
    for draw in (0.0, 0.25, 0.5, 0.999):
        price = next_price(product, sales_this_window=3, rng=FixedRandom(draw))
        assert 408 <= price <= 412
        assert price > 400


def test_fixed_draw_gives_exact_price():
    assert next_price(make_input(), 3, FixedRandom(0.5)) == 410.0


def test_up_mode_ignores_empty_window():
    assert next_price(make_input(pricing_mode="up"), 0, FixedRandom(0.5)) == 400.0


def test_down_mode_ignores_sales():
    assert next_price(make_input(pricing_mode="down"), 5, FixedRandom(0.5)) == 400.0


def test_off_mode_never_changes_price():
    product = make_input(pricing_mode="off", current_price=401.4)
    assert next_price(product, 10, FixedRandom(0.9)) == 401.4
    assert next_price(product, 0, FixedRandom(0.9)) == 401.4


def test_no_sales_decreases_price():
    assert next_price(make_input(), 0, FixedRandom(0.5)) == 396.0


def test_negative_window_counts_as_decrease():
    assert next_price(make_input(), -2, FixedRandom(0.0)) == 396.0


def test_result_is_clamped_to_bounds():
    at_max = make_input(current_price=598.0, increase_percent=10.0)
    assert next_price(at_max, 1, FixedRandom(1.0)) == 600.0

    at_min = make_input(current_price=301.0, decrease_percent=10.0)
    assert next_price(at_min, 0, FixedRandom(0.0)) == 300.0


@pytest.mark.parametrize("seed", range(20))
def test_price_always_within_bounds(seed):
    rng = random.Random(seed)
    product = make_input(
        current_price=float(rng.randint(300, 600)),
        increase_percent=10.0,
        increase_random_percent=5.0,
        decrease_percent=10.0,
        decrease_random_percent=5.0,
    )
    for window in (-1, 0, 1, 50):
        price = next_price(product, window, rng)
        assert 300 <= price <= 600
        assert price == int(price)


def test_round_price_half_up():
    assert round_price(10.5) == 11
    assert round_price(10.49) == 10
    assert round_price(396.0) == 396


def test_clamp_ignores_missing_bounds():
    assert clamp_price(50.0, None, None) == 50.0
    assert clamp_price(50.0, 60, None) == 60.0
    assert clamp_price(50.0, None, 40) == 40.0


def test_trend_follows_direction_and_keeps_on_equal():
    assert next_trend(400, 410, "down") == "up"
    assert next_trend(400, 390, "up") == "down"
    assert next_trend(400, 400, "up") == "up"


def test_validate_pricing_config_ranges():
    validate_pricing_config("full", 2, 1, 1, 0)
    with pytest.raises(ValidationError):
        validate_pricing_config("sideways", 2, 1, 1, 0)
    with pytest.raises(ValidationError):
        validate_pricing_config("full", 0.05, 1, 1, 0)
    with pytest.raises(ValidationError):
        validate_pricing_config("full", 2, 6, 1, 0)
    with pytest.raises(ValidationError):
        validate_pricing_config("full", 2, 1, 11, 0)


def test_validate_price_bounds():
    validate_price_bounds(400, 300, 600, total_sales=0)
    with pytest.raises(ValidationError):
        validate_price_bounds(400, 600, 300)
    with pytest.raises(ValidationError):
        validate_price_bounds(0, 300, 600)
    with pytest.raises(ValidationError):
        validate_price_bounds(400, 300, 600, total_sales=-1)
