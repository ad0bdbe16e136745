from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.db.models import QuotationRecord
from evdms_rules.lifecycle.quotations import Quotation, QuotationStatus
from evdms_rules.time_utils import as_utc, utcnow


def to_quotation(rec: QuotationRecord) -> Quotation:
    return Quotation(
        id=str(rec.id),
        customer_id=rec.customer_id,
        vehicle_id=rec.vehicle_id,
        variant_id=rec.variant_id,
        color_id=rec.color_id,
        base_price=rec.base_price,
        variant_price=rec.variant_price,
        color_price=rec.color_price,
        fees=rec.fees,
        dealer_discount=rec.dealer_discount,
        promotion_discount=rec.promotion_discount,
        valid_until=as_utc(rec.valid_until),
        status=QuotationStatus(rec.status),
    )


class QuotationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        quotation: Quotation,
        dealer_id: str,
        created_by: str,
        notes: str | None = None,
    ) -> QuotationRecord:
        rec = QuotationRecord(
            customer_id=quotation.customer_id,
            vehicle_id=quotation.vehicle_id,
            variant_id=quotation.variant_id,
            color_id=quotation.color_id,
            dealer_id=dealer_id,
            base_price=quotation.base_price,
            variant_price=quotation.variant_price,
            color_price=quotation.color_price,
            fees=quotation.fees,
            dealer_discount=quotation.dealer_discount,
            promotion_discount=quotation.promotion_discount,
            final_price=quotation.final_price,
            valid_until=as_utc(quotation.valid_until),
            status=quotation.status,
            created_by=created_by,
            notes=notes,
        )
        self._session.add(rec)
        await self._session.flush()
        return rec

    async def get(self, quotation_id: uuid.UUID) -> QuotationRecord | None:
        return await self._session.get(QuotationRecord, quotation_id, populate_existing=True)

    async def compare_and_set_status(
        self,
        quotation_id: uuid.UUID,
        *,
        expected: QuotationStatus,
        new: QuotationStatus,
        at: datetime | None = None,
    ) -> bool:
        stmt = (
            update(QuotationRecord)
            .where(QuotationRecord.id == quotation_id, QuotationRecord.status == expected)
            .values(status=new, updated_at=at or utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
