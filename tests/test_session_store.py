"""
tests.test_session_store

Session ownership, mirrors and cross-context propagation.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from evdms_rules.auth.gateway import AuthGateway, TokenPair
from evdms_rules.auth.jwt import JwtConfig, issue_token
from evdms_rules.auth.mirrors import CookieJar, SharedStorage
from evdms_rules.auth.models import Principal, Role
from evdms_rules.auth.roles import Namespace
from evdms_rules.auth.session_store import SessionStore
from evdms_rules.errors import Forbidden, Unauthenticated
from evdms_rules.settings import Settings

DEALER = Principal(id="u-7", display_name="Lan", role=Role.dealer_manager, dealer_id="d-1")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _store(
    settings: Settings,
    storage: SharedStorage,
    context_id: str,
    *,
    gateway: AuthGateway | None = None,
    clock: FakeClock | None = None,
) -> SessionStore:
    clock = clock or FakeClock()
    return SessionStore(
        context_id=context_id,
        storage=storage,
        cookies=CookieJar(clock=clock),
        settings=settings,
        gateway=gateway,
        clock=clock,
    )


def _mirrors(store: SessionStore, storage: SharedStorage, settings: Settings) -> tuple:
    return (
        storage.get(settings.auth_token_key),
        storage.get(settings.user_key),
        store._cookies.get(settings.cookie_name),
    )


@pytest.mark.asyncio
async def test_login_writes_both_mirrors(settings: Settings) -> None:
    storage = SharedStorage()
    store = _store(settings, storage, "tab-a")

    session = await store.login("opaque-token", DEALER, refresh_token="r-1")

    assert store.current_session() == session
    assert storage.get("evdms_auth_token") == "opaque-token"
    assert storage.get("evdms_refresh_token") == "r-1"
    assert json.loads(storage.get("evdms_user") or "{}")["role"] == "DealerManager"
    cookie = store._cookies.cookie("evdms_auth_token")
    assert cookie is not None
    assert cookie.value == "opaque-token"
    assert cookie.expires_at - session.issued_at == timedelta(days=7)
    assert "SameSite=Lax" in cookie.header()


@pytest.mark.asyncio
async def test_jwt_claims_drive_session_times(settings: Settings) -> None:
    token = issue_token(
        cfg=JwtConfig.from_settings(settings), principal=DEALER, ttl=timedelta(minutes=30)
    )
    store = _store(settings, SharedStorage(), "tab-a")
    session = await store.login(token, DEALER)
    assert session.expires_at - session.issued_at == timedelta(minutes=30)


@pytest.mark.asyncio
async def test_logout_clears_everything_and_propagates(settings: Settings) -> None:
    storage = SharedStorage()
    tab_a = _store(settings, storage, "tab-a")
    tab_b = _store(settings, storage, "tab-b")
    seen: list[object] = []
    tab_b.subscribe(seen.append)

    await tab_a.login("tok-1", DEALER)
    await storage.settle()
    assert tab_b.current_session() is not None
    assert tab_b.current_session().principal == DEALER  # type: ignore[union-attr]

    await tab_a.logout()
    assert tab_a.current_session() is None
    assert _mirrors(tab_a, storage, settings) == (None, None, None)
    assert storage.keys() == []

    await storage.settle()
    assert tab_b.current_session() is None
    assert tab_b._cookies.get(settings.cookie_name) is None
    assert seen[-1] is None


@pytest.mark.asyncio
async def test_sibling_picks_up_new_token(settings: Settings) -> None:
    storage = SharedStorage()
    tab_a = _store(settings, storage, "tab-a")
    tab_b = _store(settings, storage, "tab-b")

    await tab_a.login("tok-1", DEALER)
    await tab_a.refresh("tok-2")
    await storage.settle()

    session = tab_b.current_session()
    assert session is not None
    assert session.token == "tok-2"
    assert tab_b._cookies.get(settings.cookie_name) == "tok-2"


@pytest.mark.asyncio
async def test_refresh_without_session(settings: Settings) -> None:
    store = _store(settings, SharedStorage(), "tab-a")
    with pytest.raises(Unauthenticated):
        await store.refresh("tok")
    with pytest.raises(Unauthenticated):
        await store.login("", DEALER)


@pytest.mark.asyncio
async def test_expire_destroys_expired_session(settings: Settings) -> None:
    clock = FakeClock()
    storage = SharedStorage()
    store = _store(settings, storage, "tab-a", clock=clock)
    await store.login("opaque", DEALER)

    assert await store.expire() is False
    clock.now += timedelta(days=7, seconds=1)
    assert await store.expire() is True
    assert store.current_session() is None
    assert storage.get(settings.auth_token_key) is None


@pytest.mark.asyncio
async def test_restore_reads_durable_mirror(settings: Settings) -> None:
    storage = SharedStorage()
    await _store(settings, storage, "tab-a").login("tok-1", DEALER, refresh_token="r-1")

    fresh = _store(settings, storage, "tab-c")
    session = await fresh.restore()
    assert session is not None
    assert session.principal == DEALER
    assert session.refresh_token == "r-1"
    assert fresh._cookies.get(settings.cookie_name) == "tok-1"


@pytest.mark.asyncio
async def test_restore_discards_corrupt_user_entry(settings: Settings) -> None:
    storage = SharedStorage()
    storage.set(settings.auth_token_key, "tok-1", source="other")
    storage.set(settings.user_key, json.dumps({"id": "u-1", "role": "Wizard"}), source="other")

    store = _store(settings, storage, "tab-a")
    assert await store.restore() is None
    assert storage.get(settings.auth_token_key) is None
    assert storage.get(settings.user_key) is None


@pytest.mark.asyncio
async def test_cancelled_login_still_completes(settings: Settings) -> None:
    storage = SharedStorage()
    store = _store(settings, storage, "tab-a")

    async with store._lock:
        task = asyncio.create_task(store.login("tok-1", DEALER))
        await asyncio.sleep(0)
        task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    # The shielded write runs to completion once the lock is released.
    for _ in range(5):
        await asyncio.sleep(0)
    assert store.current_session() is not None
    assert storage.get(settings.auth_token_key) == "tok-1"


def _gateway(handler) -> AuthGateway:
    return AuthGateway.from_settings(
        Settings(auth_api_base_url="http://idp"), transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_logout_succeeds_when_remote_call_fails(settings: Settings) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(500, json={"success": False})

    storage = SharedStorage()
    store = _store(settings, storage, "tab-a", gateway=_gateway(handler))
    await store.login("tok-1", DEALER)

    await store.logout()
    assert calls == ["/api/dealer/auth/logout"]
    assert store.current_session() is None
    assert storage.keys() == []


@pytest.mark.asyncio
async def test_renew_uses_refresh_token_and_rejection_invalidates(settings: Settings) -> None:
    responses = [
        httpx.Response(200, json={"data": {"token": "tok-2", "refreshToken": "r-2"}}),
        httpx.Response(401, json={"success": False}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/dealer/auth/refresh-token"
        return responses.pop(0)

    storage = SharedStorage()
    store = _store(settings, storage, "tab-a", gateway=_gateway(handler))
    await store.login("tok-1", DEALER, refresh_token="r-1")

    session = await store.renew()
    assert session.token == "tok-2"
    assert storage.get(settings.refresh_token_key) == "r-2"

    with pytest.raises(Unauthenticated):
        await store.renew()
    assert store.current_session() is None
    assert storage.keys() == []


@pytest.mark.asyncio
async def test_gateway_login_checks_namespace(settings: Settings) -> None:
    token = issue_token(cfg=JwtConfig.from_settings(settings), principal=DEALER)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"success": True, "data": {"token": token, "role": "DealerManager", "dealerId": "d-1"}},
        )

    gateway = _gateway(handler)
    result = await gateway.login(namespace=Namespace.dealer, username="lan", password="pw")
    assert result.principal == DEALER
    assert result.refresh_token is None

    with pytest.raises(Forbidden):
        await gateway.login(namespace=Namespace.cms, username="lan", password="pw")


@pytest.mark.asyncio
async def test_gateway_rejects_bad_credentials() -> None:
    gateway = _gateway(lambda request: httpx.Response(401, json={"message": "nope"}))
    with pytest.raises(Unauthenticated):
        await gateway.login(namespace=Namespace.customer, username="x", password="y")


class HeldRefreshGateway:
    """Gateway whose refresh answers only once `release` is set."""

    def __init__(self, pair: TokenPair) -> None:
        self.pair = pair
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.reject = False

    async def refresh(self, *, namespace: Namespace, refresh_token: str) -> TokenPair:
        self.started.set()
        await self.release.wait()
        if self.reject:
            raise Unauthenticated("refresh token rejected")
        return self.pair

    async def logout(self, *, namespace: Namespace, token: str) -> None:
        return None


ADMIN = Principal(id="bob", display_name="Bob", role=Role.admin)


@pytest.mark.asyncio
async def test_renewed_token_is_dropped_when_another_user_signed_in_meanwhile(
    settings: Settings,
) -> None:
    gateway = HeldRefreshGateway(TokenPair(token="tok-A2", refresh_token="r-A2"))
    storage = SharedStorage()
    store = _store(settings, storage, "tab-a", gateway=gateway)  # type: ignore[arg-type]
    await store.login("tok-A1", DEALER, refresh_token="r-A1")

    renewal = asyncio.create_task(store.renew())
    await gateway.started.wait()
    await store.logout()
    await store.login("tok-B1", ADMIN)
    gateway.release.set()

    with pytest.raises(Unauthenticated):
        await renewal
    session = store.current_session()
    assert session is not None
    assert (session.token, session.principal.id) == ("tok-B1", "bob")
    assert _mirrors(store, storage, settings)[0] == "tok-B1"
    assert _mirrors(store, storage, settings)[2] == "tok-B1"


@pytest.mark.asyncio
async def test_late_refresh_rejection_keeps_the_newer_session(settings: Settings) -> None:
    gateway = HeldRefreshGateway(TokenPair(token="unused", refresh_token=None))
    gateway.reject = True
    storage = SharedStorage()
    store = _store(settings, storage, "tab-a", gateway=gateway)  # type: ignore[arg-type]
    await store.login("tok-A1", DEALER, refresh_token="r-A1")

    renewal = asyncio.create_task(store.renew())
    await gateway.started.wait()
    await store.login("tok-B1", ADMIN)
    gateway.release.set()

    with pytest.raises(Unauthenticated):
        await renewal
    session = store.current_session()
    assert session is not None
    assert session.principal.id == "bob"
    assert storage.get(settings.auth_token_key) == "tok-B1"
