from __future__ import annotations

import pytest

from evdms_rules.errors import InvalidAmount
from evdms_rules.finance.money import format_amount
from evdms_rules.finance.pricing import compute_final_price


def test_composition_order() -> None:
    result = compute_final_price(1_000_000, 100_000, 50_000, 0, 50_000, 50_000)
    assert result.amount == 1_050_000
    assert not result.clamped


def test_fees_are_added_before_discounts() -> None:
    result = compute_final_price(500_000, fees=20_000, dealer_discount=10_000)
    assert result.amount == 510_000


def test_negative_modifiers_are_allowed() -> None:
    assert compute_final_price(800_000, variant_modifier=-50_000).amount == 750_000


def test_negative_result_is_clamped_and_flagged() -> None:
    result = compute_final_price(100_000, dealer_discount=80_000, promotion_discount=40_000)
    assert result.amount == 0
    assert result.raw_amount == -20_000
    assert result.clamped


def test_exactly_zero_is_not_a_clamp() -> None:
    result = compute_final_price(100_000, dealer_discount=100_000)
    assert result.amount == 0
    assert not result.clamped


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base": -1},
        {"base": 100, "fees": -1},
        {"base": 100, "dealer_discount": -5},
        {"base": 100, "promotion_discount": -5},
        {"base": 10.5},
        {"base": True},
    ],
)
def test_invalid_amounts(kwargs: dict) -> None:
    with pytest.raises(InvalidAmount):
        compute_final_price(**kwargs)


def test_format_amount() -> None:
    assert format_amount(1_050_000, currency="VND") == "1,050,000 VND"
    assert format_amount(123_456, currency="USD", minor_digits=2) == "1,234.56 USD"
