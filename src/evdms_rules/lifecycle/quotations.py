"""
evdms_rules.lifecycle.quotations

Quotation lifecycle with time-based expiry.

Responsibilities:
- Define the Quotation entity; `final_price` is always derived by the pricing engine.
- Report an overdue draft/sent quotation as `expired` on every read.
- Reject any transition out of an overdue quotation other than into `expired`.
- Allow early withdrawal (`expired` before `valid_until`) to dealer roles only.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from evdms_rules.auth.models import Role
from evdms_rules.errors import Expired
from evdms_rules.finance.pricing import PriceResult, compute_final_price
from evdms_rules.lifecycle.machine import StateMachine
from evdms_rules.observability.logging import get_logger
from evdms_rules.time_utils import as_utc

log = get_logger(__name__)


class QuotationStatus(enum.StrEnum):
    draft = "draft"
    sent = "sent"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


@dataclass(frozen=True, slots=True)
class Quotation:
    id: str
    customer_id: str
    vehicle_id: str
    variant_id: str | None
    color_id: str | None
    base_price: int
    variant_price: int
    color_price: int
    dealer_discount: int
    promotion_discount: int
    valid_until: datetime
    status: QuotationStatus
    fees: int = 0

    @property
    def pricing(self) -> PriceResult:
        return compute_final_price(
            self.base_price,
            self.variant_price,
            self.color_price,
            self.fees,
            self.dealer_discount,
            self.promotion_discount,
        )

    @property
    def final_price(self) -> int:
        return self.pricing.amount


_OPEN = frozenset({QuotationStatus.draft, QuotationStatus.sent})
_DEALER = frozenset({Role.dealer_manager, Role.dealer_staff})
_RESPONDERS = _DEALER | {Role.customer}


def _quotation_guard(current: QuotationStatus, next: QuotationStatus, role: Role | None) -> bool:
    if next in (QuotationStatus.sent, QuotationStatus.expired):
        # Sending, and withdrawing before `valid_until`, belong to the dealer.
        return role in _DEALER
    return role in _RESPONDERS


QUOTATION_MACHINE: StateMachine[QuotationStatus] = StateMachine(
    entity="quotation",
    states=QuotationStatus,
    initial=QuotationStatus.draft,
    edges={
        QuotationStatus.draft: frozenset({QuotationStatus.sent, QuotationStatus.expired}),
        QuotationStatus.sent: frozenset(
            {QuotationStatus.accepted, QuotationStatus.rejected, QuotationStatus.expired}
        ),
    },
    terminal=frozenset(
        {QuotationStatus.accepted, QuotationStatus.rejected, QuotationStatus.expired}
    ),
    guard=_quotation_guard,
)


def is_overdue(quotation: Quotation, now: datetime) -> bool:
    return quotation.status in _OPEN and as_utc(quotation.valid_until) <= as_utc(now)


def effective_status(quotation: Quotation, now: datetime) -> QuotationStatus:
    if is_overdue(quotation, now):
        return QuotationStatus.expired
    return quotation.status


def can_transition(
    current: QuotationStatus, next: QuotationStatus, role: Role | None
) -> bool:
    return QUOTATION_MACHINE.can_transition(current, next, role)


def apply(
    quotation: Quotation,
    next: QuotationStatus,
    role: Role | None,
    *,
    now: datetime,
    expected: QuotationStatus | None = None,
) -> Quotation:
    if is_overdue(quotation, now) and next is not QuotationStatus.expired:
        log.info(
            "quotation_overdue",
            quotation_id=quotation.id,
            stored=quotation.status.value,
            requested=next.value,
        )
        raise Expired(
            f"quotation {quotation.id} expired at {as_utc(quotation.valid_until).isoformat()}",
            quotation_id=quotation.id,
            current=QuotationStatus.expired.value,
            requested=next.value,
        )
    # Once overdue, persisting `expired` records a fact about time; any caller may.
    return QUOTATION_MACHINE.apply(
        quotation, next, role, expected=expected, unguarded=is_overdue(quotation, now)
    )


# --- Module Notes -----------------------------------------------------------
# Whether the backend eventually persists `expired` by itself is the data store's
# contract; reads here derive it, and a caller may persist it via `apply(..., expired)`.
