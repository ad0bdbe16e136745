"""
evdms_rules.api.routers.orders

Order endpoints.

Responsibilities:
- Create orders (dealer roles) and read them within the caller's scope.
- Apply status transitions with an optional expected-state precondition.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from evdms_rules.api.deps import db_session
from evdms_rules.auth.deps import get_principal, require_feature
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature
from evdms_rules.lifecycle.orders import Order, OrderStatus, PaymentMethod, order_transitions_for
from evdms_rules.services.order_service import OrderService

router = APIRouter(prefix="/v1/orders", tags=["orders"])


class OrderCreateRequest(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    vehicle_id: str = Field(min_length=1, max_length=64)
    total_amount: int
    payment_method: PaymentMethod = PaymentMethod.cash


class TransitionRequest(BaseModel):
    status: OrderStatus
    expected: OrderStatus | None = None


class OrderResponse(BaseModel):
    id: str
    customer_id: str
    vehicle_id: str
    dealer_id: str
    total_amount: int
    payment_method: PaymentMethod
    status: OrderStatus
    allowed_transitions: list[OrderStatus]


def to_response(order: Order, principal: Principal) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        customer_id=order.customer_id,
        vehicle_id=order.vehicle_id,
        dealer_id=order.dealer_id,
        total_amount=order.total_amount,
        payment_method=order.payment_method,
        status=order.status,
        allowed_transitions=order_transitions_for(order.status, principal.role),
    )


@router.post("", response_model=OrderResponse, status_code=HTTP_201_CREATED)
async def create_order(
    body: OrderCreateRequest,
    principal: Principal = Depends(require_feature(Feature.create_orders)),
    session: AsyncSession = Depends(db_session),
) -> OrderResponse:
    order = await OrderService(session=session).create(
        principal=principal,
        customer_id=body.customer_id,
        vehicle_id=body.vehicle_id,
        total_amount=body.total_amount,
        payment_method=body.payment_method,
    )
    return to_response(order, principal)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> OrderResponse:
    order = await OrderService(session=session).get(order_id, principal=principal)
    return to_response(order, principal)


@router.post("/{order_id}/transition", response_model=OrderResponse)
async def transition_order(
    order_id: uuid.UUID,
    body: TransitionRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> OrderResponse:
    # Role checks live in the lifecycle guard so the rejection carries the current state.
    order = await OrderService(session=session).transition(
        order_id, body.status, principal=principal, expected=body.expected
    )
    return to_response(order, principal)
