"""
evdms_rules.services.order_service

Order lifecycle service (transaction + persistence owner).

Responsibilities:
- Create orders for the principal's dealer.
- Apply role-guarded transitions as conditional writes against the stored status.
- Record an audit event for every state change.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature, can_use_feature
from evdms_rules.db.repositories.audit import AuditRepo
from evdms_rules.db.repositories.orders import OrderRepo, to_order
from evdms_rules.errors import Forbidden, InvalidTransition, NotFound
from evdms_rules.finance.money import require_amount
from evdms_rules.lifecycle import orders as order_rules
from evdms_rules.lifecycle.orders import Order, OrderStatus, PaymentMethod
from evdms_rules.observability.logging import get_logger
from evdms_rules.services.common import commit, ensure_visible

log = get_logger(__name__)


class OrderService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._orders = OrderRepo(session)
        self._audit = AuditRepo(session)

    async def create(
        self,
        *,
        principal: Principal,
        customer_id: str,
        vehicle_id: str,
        total_amount: int,
        payment_method: PaymentMethod,
        quotation_id: uuid.UUID | None = None,
    ) -> Order:
        if not can_use_feature(Feature.create_orders, principal.role):
            raise Forbidden("role may not create orders", role=principal.role.value)
        if principal.dealer_id is None:
            raise Forbidden("principal is not attached to a dealer", role=principal.role.value)
        require_amount("total_amount", total_amount, allow_zero=False)

        rec = await self._orders.create(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            dealer_id=principal.dealer_id,
            total_amount=total_amount,
            payment_method=payment_method,
            quotation_id=quotation_id,
        )
        await self._audit.add(
            entity="order",
            entity_id=str(rec.id),
            actor=principal.id,
            event_type="ORDER_CREATED",
            details={
                "total_amount": total_amount,
                "payment_method": payment_method.value,
                "quotation_id": str(quotation_id) if quotation_id else None,
            },
        )
        await commit(self._session)
        log.info("order_created", order_id=str(rec.id), dealer_id=rec.dealer_id)
        return to_order(rec)

    async def get(self, order_id: uuid.UUID, *, principal: Principal) -> Order:
        rec = await self._orders.get(order_id)
        if rec is None:
            raise NotFound(f"order {order_id} not found", order_id=str(order_id))
        ensure_visible(
            principal,
            entity="order",
            entity_id=str(order_id),
            dealer_id=rec.dealer_id,
            customer_id=rec.customer_id,
        )
        return to_order(rec)

    async def transition(
        self,
        order_id: uuid.UUID,
        next: OrderStatus,
        *,
        principal: Principal,
        expected: OrderStatus | None = None,
    ) -> Order:
        order = await self.get(order_id, principal=principal)
        updated = order_rules.apply(order, next, principal.role, expected=expected)

        if not await self._orders.compare_and_set_status(
            order_id, expected=order.status, new=next
        ):
            # Another writer moved the order between our read and write.
            await self._session.rollback()
            fresh = await self.get(order_id, principal=principal)
            raise InvalidTransition(
                entity="order",
                current=fresh.status.value,
                requested=next.value,
                role=principal.role.value,
            )

        await self._audit.add(
            entity="order",
            entity_id=str(order_id),
            actor=principal.id,
            event_type="ORDER_TRANSITIONED",
            details={"from": order.status.value, "to": next.value},
        )
        await commit(self._session)
        log.info(
            "order_transitioned",
            order_id=str(order_id),
            current=order.status.value,
            next=next.value,
        )
        return updated