"""
tests.test_quotation_lifecycle

Quotation transitions, role guards and time-based expiry.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from evdms_rules.auth.models import Role
from evdms_rules.errors import ConfigurationError, Expired, InvalidTransition
from evdms_rules.lifecycle import quotations
from evdms_rules.lifecycle.machine import StateMachine
from evdms_rules.lifecycle.quotations import Quotation, QuotationStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _quotation(status: QuotationStatus = QuotationStatus.draft, *, valid_for: timedelta = timedelta(days=7)) -> Quotation:
    return Quotation(
        id="q-1",
        customer_id="c-1",
        vehicle_id="v-1",
        variant_id="var-1",
        color_id="col-1",
        base_price=1_000_000,
        variant_price=100_000,
        color_price=50_000,
        dealer_discount=50_000,
        promotion_discount=50_000,
        valid_until=NOW + valid_for,
        status=status,
    )


def test_final_price_is_derived() -> None:
    assert _quotation().final_price == 1_050_000


def test_dealer_sends_customer_accepts() -> None:
    q = quotations.apply(_quotation(), QuotationStatus.sent, Role.dealer_staff, now=NOW)
    q = quotations.apply(q, QuotationStatus.accepted, Role.customer, now=NOW)
    assert q.status is QuotationStatus.accepted


def test_role_guards() -> None:
    assert not quotations.can_transition(QuotationStatus.draft, QuotationStatus.sent, Role.customer)
    assert not quotations.can_transition(QuotationStatus.draft, QuotationStatus.sent, Role.evm_staff)
    assert not quotations.can_transition(QuotationStatus.sent, QuotationStatus.accepted, Role.admin)
    assert quotations.can_transition(QuotationStatus.sent, QuotationStatus.rejected, Role.dealer_manager)
    with pytest.raises(InvalidTransition):
        quotations.apply(_quotation(), QuotationStatus.accepted, Role.customer, now=NOW)


def test_overdue_quotation_reads_as_expired() -> None:
    q = _quotation(QuotationStatus.sent, valid_for=timedelta(seconds=-1))
    assert quotations.is_overdue(q, NOW)
    assert quotations.effective_status(q, NOW) is QuotationStatus.expired
    # Decided quotations never expire.
    accepted = _quotation(QuotationStatus.accepted, valid_for=timedelta(days=-1))
    assert quotations.effective_status(accepted, NOW) is QuotationStatus.accepted


def test_valid_until_boundary_is_expired() -> None:
    q = _quotation(QuotationStatus.draft, valid_for=timedelta(0))
    assert quotations.effective_status(q, NOW) is QuotationStatus.expired


def test_overdue_quotation_only_moves_to_expired() -> None:
    q = _quotation(QuotationStatus.sent, valid_for=timedelta(hours=-1))
    with pytest.raises(Expired):
        quotations.apply(q, QuotationStatus.accepted, Role.customer, now=NOW)
    expired = quotations.apply(q, QuotationStatus.expired, Role.customer, now=NOW)
    assert expired.status is QuotationStatus.expired


def test_naive_times_are_treated_as_utc() -> None:
    q = _quotation(QuotationStatus.draft, valid_for=timedelta(hours=1))
    naive_now = (NOW + timedelta(hours=2)).replace(tzinfo=None)
    assert quotations.is_overdue(q, naive_now)


def test_expired_is_terminal() -> None:
    q = _quotation(QuotationStatus.expired)
    with pytest.raises(InvalidTransition):
        quotations.apply(q, QuotationStatus.sent, Role.dealer_staff, now=NOW)


def test_machine_rejects_terminal_state_with_exits() -> None:
    with pytest.raises(ConfigurationError):
        StateMachine(
            entity="broken",
            states=QuotationStatus,
            initial=QuotationStatus.draft,
            edges={QuotationStatus.accepted: frozenset({QuotationStatus.draft})},
            terminal=frozenset({QuotationStatus.accepted}),
            guard=lambda current, nxt, role: True,
        )


@pytest.mark.parametrize("role", [Role.customer, Role.evm_staff, Role.admin, None])
def test_only_the_dealer_withdraws_a_valid_quotation(role: Role | None) -> None:
    q = _quotation(QuotationStatus.sent)
    with pytest.raises(InvalidTransition):
        quotations.apply(q, QuotationStatus.expired, role, now=NOW)
    assert not quotations.can_transition(QuotationStatus.sent, QuotationStatus.expired, role)

    withdrawn = quotations.apply(q, QuotationStatus.expired, Role.dealer_staff, now=NOW)
    assert withdrawn.status is QuotationStatus.expired


def test_any_caller_persists_expiry_once_overdue() -> None:
    q = _quotation(QuotationStatus.draft, valid_for=timedelta(minutes=-5))
    assert quotations.apply(q, QuotationStatus.expired, None, now=NOW).status is QuotationStatus.expired
    with pytest.raises(InvalidTransition):
        quotations.apply(
            q, QuotationStatus.expired, Role.evm_staff, now=NOW, expected=QuotationStatus.sent
        )
