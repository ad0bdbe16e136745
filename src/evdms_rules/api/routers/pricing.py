from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from evdms_rules.api.deps import settings_dep
from evdms_rules.auth.deps import get_principal
from evdms_rules.finance.amortization import plan_installment
from evdms_rules.finance.money import format_amount
from evdms_rules.finance.pricing import compute_final_price
from evdms_rules.settings import Settings

router = APIRouter(
    prefix="/v1/pricing", tags=["pricing"], dependencies=[Depends(get_principal)]
)


# Amounts are validated by the finance modules so violations share the domain error shape.
class QuoteRequest(BaseModel):
    base_price: int
    variant_price: int = 0
    color_price: int = 0
    fees: int = 0
    dealer_discount: int = 0
    promotion_discount: int = 0


class QuoteResponse(BaseModel):
    final_price: int
    raw_amount: int
    clamped: bool
    formatted: str


class InstallmentRequest(BaseModel):
    order_total: int
    down_payment: int
    annual_rate_percent: Decimal
    months: int


class InstallmentResponse(BaseModel):
    order_total: int
    down_payment: int
    loan_amount: int
    months: int
    annual_rate_percent: str
    monthly_payment: int
    total_payable: int
    total_interest: int


@router.post("/quote", response_model=QuoteResponse)
async def quote(
    body: QuoteRequest, settings: Settings = Depends(settings_dep)
) -> QuoteResponse:
    result = compute_final_price(
        body.base_price,
        body.variant_price,
        body.color_price,
        body.fees,
        body.dealer_discount,
        body.promotion_discount,
    )
    return QuoteResponse(
        final_price=result.amount,
        raw_amount=result.raw_amount,
        clamped=result.clamped,
        formatted=format_amount(
            result.amount, currency=settings.currency, minor_digits=settings.currency_minor_digits
        ),
    )


@router.post("/installment", response_model=InstallmentResponse)
async def installment(
    body: InstallmentRequest, settings: Settings = Depends(settings_dep)
) -> InstallmentResponse:
    plan = plan_installment(
        body.order_total,
        body.down_payment,
        body.annual_rate_percent,
        body.months,
        settings=settings,
    )
    return InstallmentResponse(
        order_total=plan.order_total,
        down_payment=plan.down_payment,
        loan_amount=plan.loan_amount,
        months=plan.months,
        annual_rate_percent=str(plan.annual_rate_percent),
        monthly_payment=plan.monthly_payment,
        total_payable=plan.total_payable,
        total_interest=plan.total_interest,
    )
