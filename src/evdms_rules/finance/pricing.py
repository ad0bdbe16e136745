"""
evdms_rules.finance.pricing

Final price composition.

Responsibilities:
- Compose `base + variant + color + fees - dealer_discount - promotion_discount`
  in integer minor units, in exactly that order.
- Clamp negative results to zero and flag them as misconfigured discounts.
"""

from __future__ import annotations

from dataclasses import dataclass

from evdms_rules.errors import InvalidAmount
from evdms_rules.finance.money import require_amount
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PriceResult:
    amount: int
    raw_amount: int
    clamped: bool = False


def _require_modifier(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer amount in minor units", field=name)
    return value


def compute_final_price(
    base: int,
    variant_modifier: int = 0,
    color_modifier: int = 0,
    fees: int = 0,
    dealer_discount: int = 0,
    promotion_discount: int = 0,
) -> PriceResult:
    """
    Discounts are subtracted once all additive modifiers are in, and never compounded
    against each other. Variant and color modifiers may be negative (cheaper trims).
    """

    require_amount("base", base)
    _require_modifier("variant_modifier", variant_modifier)
    _require_modifier("color_modifier", color_modifier)
    require_amount("fees", fees)
    require_amount("dealer_discount", dealer_discount)
    require_amount("promotion_discount", promotion_discount)

    gross = base + variant_modifier + color_modifier + fees
    raw = gross - dealer_discount - promotion_discount
    if raw < 0:
        log.warning(
            "price_clamped",
            gross=gross,
            dealer_discount=dealer_discount,
            promotion_discount=promotion_discount,
            raw_amount=raw,
        )
        return PriceResult(amount=0, raw_amount=raw, clamped=True)
    return PriceResult(amount=raw, raw_amount=raw)


# --- Module Notes -----------------------------------------------------------
# Callers that persist a price must store `amount`; `clamped` results should be
# surfaced to whoever configured the discounts.
