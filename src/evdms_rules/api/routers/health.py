"""
evdms_rules.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`): database reachable and route table loaded.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from evdms_rules.api.deps import db_session, route_table_dep
from evdms_rules.auth.routes import RouteTable

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    session: AsyncSession = Depends(db_session),
    table: RouteTable = Depends(route_table_dep),
) -> dict[str, Any]:
    await session.execute(text("SELECT 1"))
    return {"status": "ready", "routes": len(table)}
