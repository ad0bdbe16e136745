from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from evdms_rules.api.deps import db_session
from evdms_rules.api.routers.orders import OrderResponse, to_response
from evdms_rules.auth.deps import get_principal, require_feature
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature
from evdms_rules.lifecycle.orders import PaymentMethod
from evdms_rules.lifecycle.quotations import QuotationStatus
from evdms_rules.services.quotation_service import QuotationService, QuotationView

router = APIRouter(prefix="/v1/quotations", tags=["quotations"])


class QuotationCreateRequest(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    vehicle_id: str = Field(min_length=1, max_length=64)
    variant_id: str | None = Field(default=None, max_length=64)
    color_id: str | None = Field(default=None, max_length=64)
    base_price: int
    variant_price: int = 0
    color_price: int = 0
    fees: int = 0
    dealer_discount: int = 0
    promotion_discount: int = 0
    valid_until: datetime
    notes: str | None = Field(default=None, max_length=2000)


class QuotationTransitionRequest(BaseModel):
    status: QuotationStatus
    expected: QuotationStatus | None = None


class ConvertRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.cash


class QuotationResponse(BaseModel):
    id: str
    customer_id: str
    vehicle_id: str
    variant_id: str | None
    color_id: str | None
    base_price: int
    variant_price: int
    color_price: int
    fees: int
    dealer_discount: int
    promotion_discount: int
    final_price: int
    price_clamped: bool
    valid_until: datetime
    status: QuotationStatus
    stored_status: QuotationStatus


def _response(view: QuotationView) -> QuotationResponse:
    q = view.quotation
    return QuotationResponse(
        id=q.id,
        customer_id=q.customer_id,
        vehicle_id=q.vehicle_id,
        variant_id=q.variant_id,
        color_id=q.color_id,
        base_price=q.base_price,
        variant_price=q.variant_price,
        color_price=q.color_price,
        fees=q.fees,
        dealer_discount=q.dealer_discount,
        promotion_discount=q.promotion_discount,
        final_price=view.pricing.amount,
        price_clamped=view.pricing.clamped,
        valid_until=q.valid_until,
        status=view.status,
        stored_status=view.stored_status,
    )


@router.post("", response_model=QuotationResponse, status_code=HTTP_201_CREATED)
async def create_quotation(
    body: QuotationCreateRequest,
    principal: Principal = Depends(require_feature(Feature.manage_quotations)),
    session: AsyncSession = Depends(db_session),
) -> QuotationResponse:
    view = await QuotationService(session=session).create(
        principal=principal, **body.model_dump()
    )
    return _response(view)


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(
    quotation_id: uuid.UUID,
    principal: Principal = Depends(require_feature(Feature.view_quotations)),
    session: AsyncSession = Depends(db_session),
) -> QuotationResponse:
    return _response(await QuotationService(session=session).get(quotation_id, principal=principal))


@router.post("/{quotation_id}/transition", response_model=QuotationResponse)
async def transition_quotation(
    quotation_id: uuid.UUID,
    body: QuotationTransitionRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> QuotationResponse:
    view = await QuotationService(session=session).transition(
        quotation_id, body.status, principal=principal, expected=body.expected
    )
    return _response(view)


@router.post("/{quotation_id}/order", response_model=OrderResponse, status_code=HTTP_201_CREATED)
async def convert_quotation(
    quotation_id: uuid.UUID,
    body: ConvertRequest,
    principal: Principal = Depends(require_feature(Feature.create_orders)),
    session: AsyncSession = Depends(db_session),
) -> OrderResponse:
    order = await QuotationService(session=session).convert_to_order(
        quotation_id, principal=principal, payment_method=body.payment_method
    )
    return to_response(order, principal)
