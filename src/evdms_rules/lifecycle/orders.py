"""
evdms_rules.lifecycle.orders

Order lifecycle: pending -> approved -> vehicle_allocated -> delivered -> completed,
with `cancelled` reachable before delivery.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from evdms_rules.auth.models import Role
from evdms_rules.lifecycle.machine import StateMachine


class OrderStatus(enum.StrEnum):
    pending = "pending"
    approved = "approved"
    vehicle_allocated = "vehicle_allocated"
    delivered = "delivered"
    completed = "completed"
    cancelled = "cancelled"


class PaymentMethod(enum.StrEnum):
    cash = "cash"
    installment = "installment"


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    customer_id: str
    vehicle_id: str
    total_amount: int
    payment_method: PaymentMethod
    status: OrderStatus
    dealer_id: str


# Customer and DealerStaff only ever read order status.
ORDER_ACTORS = frozenset({Role.admin, Role.evm_staff, Role.evm_manager, Role.dealer_manager})


def _order_guard(current: OrderStatus, next: OrderStatus, role: Role | None) -> bool:
    return role in ORDER_ACTORS


ORDER_MACHINE: StateMachine[OrderStatus] = StateMachine(
    entity="order",
    states=OrderStatus,
    initial=OrderStatus.pending,
    edges={
        OrderStatus.pending: frozenset({OrderStatus.approved, OrderStatus.cancelled}),
        OrderStatus.approved: frozenset({OrderStatus.vehicle_allocated, OrderStatus.cancelled}),
        OrderStatus.vehicle_allocated: frozenset({OrderStatus.delivered, OrderStatus.cancelled}),
        # A delivered vehicle needs a separate reversal process; no cancel edge.
        OrderStatus.delivered: frozenset({OrderStatus.completed}),
    },
    terminal=frozenset({OrderStatus.completed, OrderStatus.cancelled}),
    guard=_order_guard,
)


def can_transition(current: OrderStatus, next: OrderStatus, role: Role | None) -> bool:
    return ORDER_MACHINE.can_transition(current, next, role)


def apply(order: Order, next: OrderStatus, role: Role | None, *, expected: OrderStatus | None = None) -> Order:
    return ORDER_MACHINE.apply(order, next, role, expected=expected)


def order_transitions_for(status: OrderStatus, role: Role | None) -> list[OrderStatus]:
    return ORDER_MACHINE.allowed_targets(status, role)
