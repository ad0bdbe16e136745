"""
evdms_rules.services.dealer_debt_service

Dealer debt accounts (transaction + persistence owner).

Responsibilities:
- Open accounts and set debt limits (EVM side).
- Record charges and payments through `DebtLedger` over the SQL store.
- Append a ledger entry and an audit event for each committed movement.
- Serve the ledger history within the caller's dealer scope.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature, can_use_feature
from evdms_rules.db.models import LedgerEntry, LedgerEntryKind
from evdms_rules.db.repositories.audit import AuditRepo
from evdms_rules.db.repositories.dealer_accounts import SqlDebtStore
from evdms_rules.errors import Forbidden, NotFound
from evdms_rules.finance.debt_ledger import DealerAccount, DebtLedger, LedgerResult
from evdms_rules.finance.money import require_amount
from evdms_rules.observability.logging import get_logger
from evdms_rules.services.common import DEALER_ROLES, commit

log = get_logger(__name__)


class DealerDebtService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._store = SqlDebtStore(session)
        self._ledger = DebtLedger(self._store)
        self._audit = AuditRepo(session)

    async def open_account(
        self, dealer_id: str, *, debt_limit: int, principal: Principal
    ) -> DealerAccount:
        if not can_use_feature(Feature.manage_dealers, principal.role):
            raise Forbidden("role may not manage dealer accounts", role=principal.role.value)
        require_amount("debt_limit", debt_limit)

        account = await self._store.upsert(dealer_id=dealer_id, debt_limit=debt_limit)
        await self._audit.add(
            entity="dealer",
            entity_id=dealer_id,
            actor=principal.id,
            event_type="DEBT_LIMIT_SET",
            details={"debt_limit": debt_limit},
        )
        await commit(self._session)
        return account

    async def account(self, dealer_id: str, *, principal: Principal) -> DealerAccount:
        self._check_scope(dealer_id, principal)
        return await self._ledger.account(dealer_id)

    async def ledger_entries(
        self, dealer_id: str, *, principal: Principal, limit: int = 200
    ) -> list[LedgerEntry]:
        self._check_scope(dealer_id, principal)
        await self._ledger.account(dealer_id)
        return await self._store.entries(dealer_id, limit=limit)

    async def charge(
        self,
        dealer_id: str,
        amount: int,
        *,
        principal: Principal,
        override: bool = False,
        notes: str | None = None,
    ) -> LedgerResult:
        self._check_writer(dealer_id, principal)
        result = await self._ledger.record_charge(
            dealer_id, amount, actor_role=principal.role, override=override
        )
        await self._record(
            dealer_id,
            kind=LedgerEntryKind.charge,
            amount=amount,
            result=result,
            principal=principal,
            notes=notes,
        )
        return result

    async def pay(
        self,
        dealer_id: str,
        amount: int,
        *,
        principal: Principal,
        notes: str | None = None,
    ) -> LedgerResult:
        self._check_writer(dealer_id, principal)
        result = await self._ledger.record_payment(dealer_id, amount)
        await self._record(
            dealer_id,
            kind=LedgerEntryKind.payment,
            amount=amount,
            result=result,
            principal=principal,
            notes=notes,
        )
        return result

    async def _record(
        self,
        dealer_id: str,
        *,
        kind: LedgerEntryKind,
        amount: int,
        result: LedgerResult,
        principal: Principal,
        notes: str | None,
    ) -> None:
        await self._store.add_entry(
            dealer_id=dealer_id,
            kind=kind,
            amount=amount,
            balance_after=result.account.current_debt,
            actor=principal.id,
            override=result.overridden,
            notes=notes,
        )
        await self._audit.add(
            entity="dealer",
            entity_id=dealer_id,
            actor=principal.id,
            event_type=f"DEBT_{kind.value.upper()}",
            details={
                "amount": amount,
                "balance_after": result.account.current_debt,
                "overridden": result.overridden,
            },
        )
        await commit(self._session)
        log.info(
            "dealer_debt_recorded",
            dealer_id=dealer_id,
            kind=kind.value,
            amount=amount,
            balance_after=result.account.current_debt,
        )

    def _check_scope(self, dealer_id: str, principal: Principal) -> None:
        if principal.role in DEALER_ROLES and principal.dealer_id == dealer_id:
            return
        if can_use_feature(Feature.manage_dealers, principal.role):
            return
        raise NotFound(f"dealer account {dealer_id} not found", dealer_id=dealer_id)

    def _check_writer(self, dealer_id: str, principal: Principal) -> None:
        # EVM staff post movements on any account; a dealer manager only on its own.
        if can_use_feature(Feature.manage_dealers, principal.role):
            return
        if principal.dealer_id == dealer_id and can_use_feature(Feature.manage_orders, principal.role):
            return
        raise Forbidden("role may not post to this dealer account", role=principal.role.value)
