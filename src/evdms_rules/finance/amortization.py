"""
evdms_rules.finance.amortization

Fixed-payment amortization and installment plans.

Responsibilities:
- `monthly_payment`: standard annuity formula with the zero-term and zero-rate cases.
- `plan_installment`: down payment / term validation and plan totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from evdms_rules.errors import InvalidAmount
from evdms_rules.finance.money import decimal_context, require_amount, round_half_up, to_decimal
from evdms_rules.settings import Settings


def monthly_payment(principal: int, annual_rate_percent: int | float | str | Decimal, months: int) -> int:
    """
    payment = P * r * (1 + r)^n / ((1 + r)^n - 1), with r = annual% / 100 / 12.

    Rounded half-up to the minor unit once, at the end.
    """

    if isinstance(months, bool) or not isinstance(months, int) or months < 0:
        raise InvalidAmount("months must be a non-negative integer", field="months")
    if months == 0:
        # No installment plan.
        return 0
    require_amount("principal", principal)
    rate = to_decimal(annual_rate_percent)
    if rate < 0:
        raise InvalidAmount("annual rate must be >= 0", field="annual_rate_percent")

    with decimal_context():
        p = Decimal(principal)
        if rate == 0:
            return round_half_up(p / months)
        r = rate / 100 / 12
        growth = (1 + r) ** months
        return round_half_up(p * r * growth / (growth - 1))


@dataclass(frozen=True, slots=True)
class InstallmentPlan:
    order_total: int
    down_payment: int
    loan_amount: int
    months: int
    annual_rate_percent: Decimal
    monthly_payment: int
    total_payable: int
    total_interest: int


def plan_installment(
    order_total: int,
    down_payment: int,
    annual_rate_percent: int | float | str | Decimal,
    months: int,
    *,
    settings: Settings,
) -> InstallmentPlan:
    require_amount("order_total", order_total, allow_zero=False)
    require_amount("down_payment", down_payment)
    if down_payment > order_total:
        raise InvalidAmount("down payment exceeds order total", field="down_payment")

    min_down = round_half_up(
        Decimal(order_total) * settings.installment_min_down_payment_percent / 100
    )
    if down_payment < min_down:
        raise InvalidAmount(
            f"down payment must be at least {settings.installment_min_down_payment_percent}% "
            f"of the order total ({min_down})",
            field="down_payment",
            minimum=min_down,
        )
    if not settings.installment_min_months <= months <= settings.installment_max_months:
        raise InvalidAmount(
            f"term must be between {settings.installment_min_months} and "
            f"{settings.installment_max_months} months",
            field="months",
        )

    loan = order_total - down_payment
    payment = monthly_payment(loan, annual_rate_percent, months)
    total = payment * months
    return InstallmentPlan(
        order_total=order_total,
        down_payment=down_payment,
        loan_amount=loan,
        months=months,
        annual_rate_percent=to_decimal(annual_rate_percent),
        monthly_payment=payment,
        total_payable=down_payment + total,
        total_interest=total - loan,
    )


# --- Module Notes -----------------------------------------------------------
# total_interest is computed from the rounded payment, so it is what the customer
# actually pays over the term (it can differ from the exact annuity by < months units).
