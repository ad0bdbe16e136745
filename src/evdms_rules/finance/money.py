"""
evdms_rules.finance.money

Minor-unit money helpers. Amounts are `int` minor units; rates are `Decimal`.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext

from evdms_rules.errors import InvalidAmount

# Enough digits for (1 + r) ** 600 on monthly rates without drift in the last unit.
PRECISION = 50


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_decimal(value: int | float | str | Decimal) -> Decimal:
    # floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def require_amount(name: str, value: int, *, allow_zero: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer amount in minor units", field=name)
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidAmount(f"{name} must be {'>=' if allow_zero else '>'} 0", field=name, value=value)
    return value


def decimal_context():
    return localcontext(prec=PRECISION, rounding=ROUND_HALF_UP)


def format_amount(amount: int, *, currency: str, minor_digits: int = 0) -> str:
    value = Decimal(amount).scaleb(-minor_digits)
    return f"{value:,.{minor_digits}f} {currency}"
