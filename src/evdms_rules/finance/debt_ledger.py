"""
evdms_rules.finance.debt_ledger

Dealer debt-limit accounting.

Responsibilities:
- Validate charge/payment amounts and who may override the debt limit.
- Delegate the limit check to the store as one atomic compare-and-commit.
- Translate a failed commit into `DebtLimitExceeded` / `InvalidAmount`.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Protocol

from evdms_rules.auth.models import Role
from evdms_rules.auth.roles import Feature, can_use_feature
from evdms_rules.errors import DebtLimitExceeded, Forbidden, InvalidAmount, NotFound
from evdms_rules.finance.money import require_amount
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DealerAccount:
    dealer_id: str
    debt_limit: int
    current_debt: int = 0

    @property
    def available_credit(self) -> int:
        return max(self.debt_limit - self.current_debt, 0)


@dataclass(frozen=True, slots=True)
class LedgerResult:
    account: DealerAccount
    overridden: bool = False


class DebtStore(Protocol):
    """
    Authoritative storage for dealer balances. `try_*` must evaluate their condition and
    write in one atomic step, returning None when the condition does not hold.
    """

    async def get(self, dealer_id: str) -> DealerAccount | None: ...

    async def try_charge(
        self, dealer_id: str, amount: int, *, allow_over_limit: bool
    ) -> DealerAccount | None: ...

    async def try_payment(self, dealer_id: str, amount: int) -> DealerAccount | None: ...


class InMemoryDebtStore:
    """Single-process store; one lock per dealer stands in for the database row lock."""

    def __init__(self, accounts: Iterable[DealerAccount] = ()) -> None:
        self._accounts: dict[str, DealerAccount] = {a.dealer_id: a for a in accounts}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, dealer_id: str) -> DealerAccount | None:
        return self._accounts.get(dealer_id)

    async def try_charge(
        self, dealer_id: str, amount: int, *, allow_over_limit: bool
    ) -> DealerAccount | None:
        async with self._locks[dealer_id]:
            account = self._accounts.get(dealer_id)
            if account is None:
                raise NotFound(f"dealer account {dealer_id} not found", dealer_id=dealer_id)
            if not allow_over_limit and account.current_debt + amount > account.debt_limit:
                return None
            updated = replace(account, current_debt=account.current_debt + amount)
            self._accounts[dealer_id] = updated
            return updated

    async def try_payment(self, dealer_id: str, amount: int) -> DealerAccount | None:
        async with self._locks[dealer_id]:
            account = self._accounts.get(dealer_id)
            if account is None:
                raise NotFound(f"dealer account {dealer_id} not found", dealer_id=dealer_id)
            if amount > account.current_debt:
                return None
            updated = replace(account, current_debt=account.current_debt - amount)
            self._accounts[dealer_id] = updated
            return updated


class DebtLedger:
    def __init__(self, store: DebtStore) -> None:
        self._store = store

    async def account(self, dealer_id: str) -> DealerAccount:
        account = await self._store.get(dealer_id)
        if account is None:
            raise NotFound(f"dealer account {dealer_id} not found", dealer_id=dealer_id)
        return account

    async def record_charge(
        self,
        dealer_id: str,
        amount: int,
        *,
        actor_role: Role | None = None,
        override: bool = False,
    ) -> LedgerResult:
        require_amount("amount", amount, allow_zero=False)
        if override and not can_use_feature(Feature.override_debt_limit, actor_role):
            raise Forbidden(
                "only Admin may override the debt limit",
                role=actor_role.value if actor_role else None,
            )

        updated = await self._store.try_charge(dealer_id, amount, allow_over_limit=override)
        if updated is None:
            # Read only to describe the failure; the decision was made by the store.
            account = await self.account(dealer_id)
            log.info(
                "debt_limit_exceeded",
                dealer_id=dealer_id,
                amount=amount,
                current_debt=account.current_debt,
                debt_limit=account.debt_limit,
            )
            raise DebtLimitExceeded(
                dealer_id=dealer_id,
                current_debt=account.current_debt,
                amount=amount,
                debt_limit=account.debt_limit,
            )

        overridden = updated.current_debt > updated.debt_limit
        if overridden:
            log.warning(
                "debt_limit_overridden",
                dealer_id=dealer_id,
                amount=amount,
                current_debt=updated.current_debt,
                debt_limit=updated.debt_limit,
            )
        return LedgerResult(account=updated, overridden=overridden)

    async def record_payment(self, dealer_id: str, amount: int) -> LedgerResult:
        require_amount("amount", amount, allow_zero=False)
        updated = await self._store.try_payment(dealer_id, amount)
        if updated is None:
            account = await self.account(dealer_id)
            raise InvalidAmount(
                f"payment of {amount} exceeds current debt {account.current_debt}",
                field="amount",
                current_debt=account.current_debt,
            )
        return LedgerResult(account=updated)


# --- Module Notes -----------------------------------------------------------
# Two concurrent charges that together breach the limit cannot both pass: the store
# re-evaluates `current_debt + amount <= debt_limit` at commit time for each of them.
