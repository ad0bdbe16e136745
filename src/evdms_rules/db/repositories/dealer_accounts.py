"""
evdms_rules.db.repositories.dealer_accounts

SQL implementation of the debt store.

Responsibilities:
- Charge and pay as single conditional UPDATE statements (compare-and-commit).
- Append ledger entries for every committed movement.
"""

from __future__ import annotations

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.db.models import DealerAccountRecord, LedgerEntry, LedgerEntryKind
from evdms_rules.errors import NotFound
from evdms_rules.finance.debt_ledger import DealerAccount
from evdms_rules.time_utils import utcnow

_COLUMNS = (
    DealerAccountRecord.dealer_id,
    DealerAccountRecord.debt_limit,
    DealerAccountRecord.current_debt,
)


def to_account(rec: DealerAccountRecord) -> DealerAccount:
    return DealerAccount(
        dealer_id=rec.dealer_id, debt_limit=rec.debt_limit, current_debt=rec.current_debt
    )


class SqlDebtStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, dealer_id: str) -> DealerAccount | None:
        rec = await self._session.get(DealerAccountRecord, dealer_id, populate_existing=True)
        return to_account(rec) if rec is not None else None

    async def upsert(self, *, dealer_id: str, debt_limit: int) -> DealerAccount:
        rec = await self._session.get(DealerAccountRecord, dealer_id, with_for_update=True)
        if rec is None:
            rec = DealerAccountRecord(dealer_id=dealer_id, debt_limit=debt_limit, current_debt=0)
            self._session.add(rec)
        else:
            rec.debt_limit = debt_limit
        await self._session.flush()
        return to_account(rec)

    async def try_charge(
        self, dealer_id: str, amount: int, *, allow_over_limit: bool
    ) -> DealerAccount | None:
        stmt = update(DealerAccountRecord).where(DealerAccountRecord.dealer_id == dealer_id)
        if not allow_over_limit:
            # The limit is evaluated by the database against the committed balance.
            stmt = stmt.where(
                DealerAccountRecord.current_debt + amount <= DealerAccountRecord.debt_limit
            )
        stmt = stmt.values(
            current_debt=DealerAccountRecord.current_debt + amount, updated_at=utcnow()
        )
        return await self._commit_update(dealer_id, stmt)

    async def try_payment(self, dealer_id: str, amount: int) -> DealerAccount | None:
        stmt = (
            update(DealerAccountRecord)
            .where(
                DealerAccountRecord.dealer_id == dealer_id,
                DealerAccountRecord.current_debt >= amount,
            )
            .values(current_debt=DealerAccountRecord.current_debt - amount, updated_at=utcnow())
        )
        return await self._commit_update(dealer_id, stmt)

    async def _commit_update(self, dealer_id: str, stmt) -> DealerAccount | None:
        result = await self._session.execute(
            stmt.returning(*_COLUMNS).execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            if await self.get(dealer_id) is None:
                raise NotFound(f"dealer account {dealer_id} not found", dealer_id=dealer_id)
            return None
        return DealerAccount(dealer_id=row.dealer_id, debt_limit=row.debt_limit, current_debt=row.current_debt)

    async def add_entry(
        self,
        *,
        dealer_id: str,
        kind: LedgerEntryKind,
        amount: int,
        balance_after: int,
        actor: str,
        override: bool = False,
        notes: str | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            dealer_id=dealer_id,
            kind=kind,
            amount=amount,
            balance_after=balance_after,
            actor=actor,
            override=override,
            notes=notes,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def entries(self, dealer_id: str, *, limit: int = 200) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.dealer_id == dealer_id)
            .order_by(desc(LedgerEntry.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())


# --- Module Notes -----------------------------------------------------------
# Satisfies `evdms_rules.finance.debt_ledger.DebtStore`; the ledger never reads a
# balance and writes it back itself.
