"""
evdms_rules.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, the route table and DB sessions.
- Encapsulate app.state access patterns (settings/engine/sessionmaker/route table).
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from evdms_rules.auth.routes import DEFAULT_ROUTE_TABLE, RouteTable
from evdms_rules.settings import Settings, get_settings


def settings_dep(request: Request) -> Settings:
    # Apps built with explicit settings (tests, embedding) carry them on app.state.
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def route_table_dep(request: Request) -> RouteTable:
    return getattr(request.app.state, "route_table", DEFAULT_ROUTE_TABLE)


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created by the lifespan in `evdms_rules.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commit/rollback is managed explicitly by the service layer.
    async with session_factory() as session:
        yield session
