"""
tests.conftest

Shared fixtures: test settings, an app served over httpx ASGITransport, bearer tokens.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from evdms_rules.api.app import create_app
from evdms_rules.auth.jwt import JwtConfig, issue_token
from evdms_rules.auth.models import Principal, Role
from evdms_rules.settings import Settings

TEST_SECRET = "test-secret-0123456789-abcdefghijklmnop"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        env="test",
        jwt_secret=TEST_SECRET,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
    )


@pytest_asyncio.fixture
async def client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings=settings)
    # httpx ASGITransport does not drive lifespan events; run them explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


@pytest.fixture
def auth(settings: Settings) -> Callable[..., dict[str, str]]:
    def _headers(role: Role, *, subject: str = "user-1", dealer_id: str | None = None) -> dict[str, str]:
        token = issue_token(
            cfg=JwtConfig.from_settings(settings),
            principal=Principal(id=subject, display_name=subject, role=role, dealer_id=dealer_id),
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
