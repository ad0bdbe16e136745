"""
evdms_rules.api.routers.dealers

Dealer debt account endpoints.

Responsibilities:
- Open accounts / set limits (EVM roles).
- Post charges (with Admin-only limit override) and payments.
- List the ledger history of an account.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.api.deps import db_session
from evdms_rules.auth.deps import get_principal, require_feature
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature
from evdms_rules.finance.debt_ledger import DealerAccount, LedgerResult
from evdms_rules.services.dealer_debt_service import DealerDebtService

router = APIRouter(prefix="/v1/dealers", tags=["dealers"])


class AccountRequest(BaseModel):
    debt_limit: int


class ChargeRequest(BaseModel):
    amount: int
    override: bool = False
    notes: str | None = Field(default=None, max_length=2000)


class PaymentRequest(BaseModel):
    amount: int
    notes: str | None = Field(default=None, max_length=2000)


class AccountResponse(BaseModel):
    dealer_id: str
    debt_limit: int
    current_debt: int
    available_credit: int


class LedgerResponse(BaseModel):
    account: AccountResponse
    overridden: bool


class LedgerEntryResponse(BaseModel):
    kind: str
    amount: int
    balance_after: int
    override: bool
    actor: str
    notes: str | None
    created_at: datetime


def _account(account: DealerAccount) -> AccountResponse:
    return AccountResponse(
        dealer_id=account.dealer_id,
        debt_limit=account.debt_limit,
        current_debt=account.current_debt,
        available_credit=account.available_credit,
    )


def _ledger(result: LedgerResult) -> LedgerResponse:
    return LedgerResponse(account=_account(result.account), overridden=result.overridden)


@router.post("/{dealer_id}/account", response_model=AccountResponse)
async def open_account(
    dealer_id: str,
    body: AccountRequest,
    principal: Principal = Depends(require_feature(Feature.manage_dealers)),
    session: AsyncSession = Depends(db_session),
) -> AccountResponse:
    account = await DealerDebtService(session=session).open_account(
        dealer_id, debt_limit=body.debt_limit, principal=principal
    )
    return _account(account)


@router.get("/{dealer_id}/account", response_model=AccountResponse)
async def get_account(
    dealer_id: str,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AccountResponse:
    return _account(await DealerDebtService(session=session).account(dealer_id, principal=principal))


@router.post("/{dealer_id}/charges", response_model=LedgerResponse)
async def post_charge(
    dealer_id: str,
    body: ChargeRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> LedgerResponse:
    result = await DealerDebtService(session=session).charge(
        dealer_id, body.amount, principal=principal, override=body.override, notes=body.notes
    )
    return _ledger(result)


@router.post("/{dealer_id}/payments", response_model=LedgerResponse)
async def post_payment(
    dealer_id: str,
    body: PaymentRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> LedgerResponse:
    result = await DealerDebtService(session=session).pay(
        dealer_id, body.amount, principal=principal, notes=body.notes
    )
    return _ledger(result)


@router.get("/{dealer_id}/ledger", response_model=list[LedgerEntryResponse])
async def get_ledger(
    dealer_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> list[LedgerEntryResponse]:
    entries = await DealerDebtService(session=session).ledger_entries(
        dealer_id, principal=principal, limit=limit
    )
    return [
        LedgerEntryResponse(
            kind=e.kind.value,
            amount=e.amount,
            balance_after=e.balance_after,
            override=e.override,
            actor=e.actor,
            notes=e.notes,
            created_at=e.created_at,
        )
        for e in entries
    ]
