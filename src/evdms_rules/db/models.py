"""
evdms_rules.db.models

Persistence schema for orders, quotations and dealer balances.

Responsibilities:
- Define ORM models:
  - OrderRecord / QuotationRecord: lifecycle entities
  - DealerAccountRecord: debt limit and current balance per dealer
  - LedgerEntry: append-only charges/payments (with override marker)
  - AuditEvent: append-only audit trail of state changes
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Enum, Index, String, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from evdms_rules.db.base import Base
from evdms_rules.lifecycle.orders import OrderStatus, PaymentMethod
from evdms_rules.lifecycle.quotations import QuotationStatus
from evdms_rules.time_utils import utcnow


class LedgerEntryKind(enum.StrEnum):
    charge = "charge"
    payment = "payment"


class OrderRecord(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dealer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    quotation_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), nullable=True, unique=True
    )

    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class QuotationRecord(Base):
    __tablename__ = "quotations"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vehicle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dealer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    base_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    variant_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    color_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fees: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    dealer_discount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    promotion_discount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # Denormalized copy of the derived price for reporting; rewritten on every save.
    final_price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[QuotationStatus] = mapped_column(
        Enum(QuotationStatus), nullable=False, index=True
    )
    created_by: Mapped[str] = mapped_column(String(256), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class DealerAccountRecord(Base):
    __tablename__ = "dealer_accounts"

    dealer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    debt_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_debt: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    dealer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[LedgerEntryKind] = mapped_column(Enum(LedgerEntryKind), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    actor: Mapped[str] = mapped_column(String(256), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_ledger_dealer_created", "dealer_id", "created_at"),)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    actor: Mapped[str] = mapped_column(String(256), nullable=False)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    __table_args__ = (Index("ix_audit_entity_created", "entity", "entity_id", "created_at"),)


# --- Module Notes -----------------------------------------------------------
# Monetary columns are BigInteger minor units, matching `evdms_rules.finance.money`.
