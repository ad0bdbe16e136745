from __future__ import annotations

from decimal import Decimal

import pytest

from evdms_rules.errors import InvalidAmount
from evdms_rules.finance.amortization import monthly_payment, plan_installment
from evdms_rules.settings import Settings


def test_zero_rate_divides_evenly() -> None:
    assert monthly_payment(24_000_000, 0, 12) == 2_000_000


def test_zero_months_means_no_plan() -> None:
    assert monthly_payment(24_000_000, 10, 0) == 0


def test_standard_annuity() -> None:
    # 12% a year over 12 months on 1,200,000: 106,618.55 rounds half up.
    assert monthly_payment(1_200_000, 12, 12) == 106_619


def test_rate_accepts_decimal_strings() -> None:
    assert monthly_payment(1_200_000, "12", 12) == monthly_payment(1_200_000, Decimal("12"), 12)
    assert monthly_payment(1_200_000, 12.0, 12) == 106_619


@pytest.mark.parametrize(
    ("principal", "rate", "months"),
    [(-1, 5, 12), (1000, -1, 12), (1000, 5, -1)],
)
def test_invalid_inputs(principal: int, rate: int, months: int) -> None:
    with pytest.raises(InvalidAmount):
        monthly_payment(principal, rate, months)


def test_plan_totals() -> None:
    settings = Settings(env="test")
    plan = plan_installment(1_500_000, 300_000, 12, 12, settings=settings)
    assert plan.loan_amount == 1_200_000
    assert plan.monthly_payment == 106_619
    assert plan.total_payable == 300_000 + 106_619 * 12
    assert plan.total_interest == 106_619 * 12 - 1_200_000


def test_plan_enforces_down_payment_and_term() -> None:
    settings = Settings(env="test")
    with pytest.raises(InvalidAmount) as exc:
        plan_installment(1_000_000, 199_999, 8, 24, settings=settings)
    assert exc.value.context["minimum"] == 200_000
    with pytest.raises(InvalidAmount):
        plan_installment(1_000_000, 1_000_001, 8, 24, settings=settings)
    with pytest.raises(InvalidAmount):
        plan_installment(1_000_000, 200_000, 8, 6, settings=settings)
    with pytest.raises(InvalidAmount):
        plan_installment(1_000_000, 200_000, 8, 60, settings=settings)
    assert plan_installment(1_000_000, 200_000, 8, 48, settings=settings).months == 48
