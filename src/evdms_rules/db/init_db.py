"""
evdms_rules.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create the orders/quotations/dealer ledger tables for local development and tests.
- Keep production migration workflow separate (Alembic).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from evdms_rules.db import models  # noqa: F401  # registers tables on Base.metadata
from evdms_rules.db.base import Base
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("schema_ready", tables=sorted(Base.metadata.tables))
