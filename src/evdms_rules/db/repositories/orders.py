from __future__ import annotations

import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.db.models import OrderRecord
from evdms_rules.lifecycle.orders import ORDER_MACHINE, Order, OrderStatus, PaymentMethod
from evdms_rules.time_utils import utcnow


def to_order(rec: OrderRecord) -> Order:
    return Order(
        id=str(rec.id),
        customer_id=rec.customer_id,
        vehicle_id=rec.vehicle_id,
        total_amount=rec.total_amount,
        payment_method=PaymentMethod(rec.payment_method),
        status=OrderStatus(rec.status),
        dealer_id=rec.dealer_id,
    )


class OrderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        customer_id: str,
        vehicle_id: str,
        dealer_id: str,
        total_amount: int,
        payment_method: PaymentMethod,
        quotation_id: uuid.UUID | None = None,
    ) -> OrderRecord:
        rec = OrderRecord(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            dealer_id=dealer_id,
            total_amount=total_amount,
            payment_method=payment_method,
            quotation_id=quotation_id,
            status=ORDER_MACHINE.initial,
        )
        self._session.add(rec)
        await self._session.flush()
        return rec

    async def get(self, order_id: uuid.UUID) -> OrderRecord | None:
        return await self._session.get(OrderRecord, order_id, populate_existing=True)

    async def get_by_quotation(self, quotation_id: uuid.UUID) -> OrderRecord | None:
        stmt = select(OrderRecord).where(OrderRecord.quotation_id == quotation_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def compare_and_set_status(
        self, order_id: uuid.UUID, *, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        # Conditional write: loses cleanly if another writer moved the order first.
        stmt = (
            update(OrderRecord)
            .where(OrderRecord.id == order_id, OrderRecord.status == expected)
            .values(status=new, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
