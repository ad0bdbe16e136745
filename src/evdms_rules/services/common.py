"""
evdms_rules.services.common

Helpers shared by the transaction-owning services.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.auth.models import Principal, Role
from evdms_rules.errors import NotFound

DEALER_ROLES = frozenset({Role.dealer_manager, Role.dealer_staff})


async def commit(session: AsyncSession) -> None:
    # Once started, a commit runs to completion even if the awaiting request is cancelled.
    await asyncio.shield(session.commit())


def ensure_visible(
    principal: Principal,
    *,
    entity: str,
    entity_id: str,
    dealer_id: str,
    customer_id: str | None = None,
) -> None:
    """
    Dealer users see only their dealer's records; customers only their own.
    Out-of-scope records are reported as missing.
    """

    if principal.role in DEALER_ROLES and principal.dealer_id != dealer_id:
        raise NotFound(f"{entity} {entity_id} not found", **{f"{entity}_id": entity_id})
    if principal.role is Role.customer and principal.id != customer_id:
        raise NotFound(f"{entity} {entity_id} not found", **{f"{entity}_id": entity_id})
