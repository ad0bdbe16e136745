"""
evdms_rules.services.quotation_service

Quotation lifecycle service (transaction + persistence owner).

Responsibilities:
- Create quotations with a final price derived by the pricing engine.
- Report the effective (expiry-aware) status on every read.
- Persist transitions conditionally and convert accepted quotations into orders.
"""

from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature, can_use_feature
from evdms_rules.db.repositories.audit import AuditRepo
from evdms_rules.db.repositories.orders import OrderRepo
from evdms_rules.db.repositories.quotations import QuotationRepo, to_quotation
from evdms_rules.errors import Forbidden, InvalidTransition, NotFound
from evdms_rules.finance.pricing import PriceResult
from evdms_rules.lifecycle import quotations as quotation_rules
from evdms_rules.lifecycle.orders import Order, PaymentMethod
from evdms_rules.lifecycle.quotations import Quotation, QuotationStatus
from evdms_rules.observability.logging import get_logger
from evdms_rules.services.common import commit, ensure_visible
from evdms_rules.services.order_service import OrderService
from evdms_rules.time_utils import Clock, utcnow

log = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class QuotationView:
    quotation: Quotation
    stored_status: QuotationStatus
    pricing: PriceResult

    @property
    def status(self) -> QuotationStatus:
        return self.quotation.status


def _already_ordered(principal: Principal) -> InvalidTransition:
    return InvalidTransition(
        entity="quotation",
        current="ordered",
        requested="ordered",
        role=principal.role.value,
    )


class QuotationService:
    def __init__(self, *, session: AsyncSession, clock: Clock = utcnow) -> None:
        self._session = session
        self._clock = clock
        self._quotations = QuotationRepo(session)
        self._orders = OrderRepo(session)
        self._audit = AuditRepo(session)

    async def create(
        self,
        *,
        principal: Principal,
        customer_id: str,
        vehicle_id: str,
        base_price: int,
        valid_until: datetime,
        variant_id: str | None = None,
        color_id: str | None = None,
        variant_price: int = 0,
        color_price: int = 0,
        fees: int = 0,
        dealer_discount: int = 0,
        promotion_discount: int = 0,
        notes: str | None = None,
    ) -> QuotationView:
        if not can_use_feature(Feature.manage_quotations, principal.role):
            raise Forbidden("role may not create quotations", role=principal.role.value)
        if principal.dealer_id is None:
            raise Forbidden("principal is not attached to a dealer", role=principal.role.value)

        draft = Quotation(
            id="",
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            variant_id=variant_id,
            color_id=color_id,
            base_price=base_price,
            variant_price=variant_price,
            color_price=color_price,
            fees=fees,
            dealer_discount=dealer_discount,
            promotion_discount=promotion_discount,
            valid_until=valid_until,
            status=quotation_rules.QUOTATION_MACHINE.initial,
        )
        # Validates every amount before anything is written.
        pricing = draft.pricing

        rec = await self._quotations.create(
            quotation=draft,
            dealer_id=principal.dealer_id,
            created_by=principal.id,
            notes=notes,
        )
        await self._audit.add(
            entity="quotation",
            entity_id=str(rec.id),
            actor=principal.id,
            event_type="QUOTATION_CREATED",
            details={
                "final_price": pricing.amount,
                "clamped": pricing.clamped,
                "raw_amount": pricing.raw_amount,
            },
        )
        await commit(self._session)
        log.info(
            "quotation_created",
            quotation_id=str(rec.id),
            final_price=pricing.amount,
            clamped=pricing.clamped,
        )
        return self._view(to_quotation(rec))

    async def get(self, quotation_id: uuid.UUID, *, principal: Principal) -> QuotationView:
        return self._view(await self._load(quotation_id, principal))

    async def transition(
        self,
        quotation_id: uuid.UUID,
        next: QuotationStatus,
        *,
        principal: Principal,
        expected: QuotationStatus | None = None,
    ) -> QuotationView:
        stored = await self._load(quotation_id, principal)
        now = self._clock()
        updated = quotation_rules.apply(
            stored, next, principal.role, now=now, expected=expected
        )

        if not await self._quotations.compare_and_set_status(
            quotation_id, expected=stored.status, new=next, at=now
        ):
            await self._session.rollback()
            fresh = await self._load(quotation_id, principal)
            raise InvalidTransition(
                entity="quotation",
                current=quotation_rules.effective_status(fresh, now).value,
                requested=next.value,
                role=principal.role.value,
            )

        await self._audit.add(
            entity="quotation",
            entity_id=str(quotation_id),
            actor=principal.id,
            event_type="QUOTATION_TRANSITIONED",
            details={"from": stored.status.value, "to": next.value},
        )
        await commit(self._session)
        log.info(
            "quotation_transitioned",
            quotation_id=str(quotation_id),
            current=stored.status.value,
            next=next.value,
        )
        return self._view(updated)

    async def convert_to_order(
        self,
        quotation_id: uuid.UUID,
        *,
        principal: Principal,
        payment_method: PaymentMethod,
    ) -> Order:
        view = await self.get(quotation_id, principal=principal)
        if view.status is not QuotationStatus.accepted:
            raise InvalidTransition(
                entity="quotation",
                current=view.status.value,
                requested="ordered",
                role=principal.role.value,
            )
        if await self._orders.get_by_quotation(quotation_id) is not None:
            raise _already_ordered(principal)

        q = view.quotation
        try:
            return await OrderService(session=self._session).create(
                principal=principal,
                customer_id=q.customer_id,
                vehicle_id=q.vehicle_id,
                total_amount=view.pricing.amount,
                payment_method=payment_method,
                quotation_id=quotation_id,
            )
        except IntegrityError as e:
            # A concurrent conversion won the unique `orders.quotation_id` slot.
            await self._session.rollback()
            log.info("quotation_conversion_lost", quotation_id=str(quotation_id), error=str(e.orig))
            raise _already_ordered(principal) from e

    async def _load(self, quotation_id: uuid.UUID, principal: Principal) -> Quotation:
        rec = await self._quotations.get(quotation_id)
        if rec is None:
            raise NotFound(f"quotation {quotation_id} not found", quotation_id=str(quotation_id))
        ensure_visible(
            principal,
            entity="quotation",
            entity_id=str(quotation_id),
            dealer_id=rec.dealer_id,
            customer_id=rec.customer_id,
        )
        return to_quotation(rec)

    def _view(self, stored: Quotation) -> QuotationView:
        effective = quotation_rules.effective_status(stored, self._clock())
        return QuotationView(
            quotation=dataclasses.replace(stored, status=effective),
            stored_status=stored.status,
            pricing=stored.pricing,
        )


# --- Module Notes -----------------------------------------------------------
# `final_price` is never accepted from callers; the stored column is a denormalized
# copy of `Quotation.pricing.amount` written at creation.
