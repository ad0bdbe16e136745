"""
evdms_rules.auth.session_store

The single owner of the authentication session in one execution context.

Responsibilities:
- Hold the authoritative `Session` (token + principal) in memory.
- Mirror it into durable storage (`auth_token`, `refresh_token`, `user`) and into the
  cookie read by edge middleware; clear all three on logout.
- Serialize writes per context and finish them even if the caller is cancelled.
- Re-derive state from durable storage when a sibling context changes the token.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

import httpx

from evdms_rules.auth.gateway import AuthGateway
from evdms_rules.auth.jwt import read_unverified_claims
from evdms_rules.auth.mirrors import CookieJar, KeyValueStorage, StorageEvent
from evdms_rules.auth.models import Principal, Session
from evdms_rules.auth.roles import parse_role, resolve
from evdms_rules.errors import ConfigurationError, DomainError, Unauthenticated
from evdms_rules.observability.logging import get_logger
from evdms_rules.settings import Settings
from evdms_rules.time_utils import Clock, utcnow

log = get_logger(__name__)

T = TypeVar("T")
SessionListener = Callable[[Session | None], None]


def _timestamp(claims: dict[str, Any], name: str) -> datetime | None:
    value = claims.get(name)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=UTC)
    return None


def session_from_token(
    token: str,
    principal: Principal,
    *,
    refresh_token: str | None = None,
    fallback_ttl: timedelta,
    now: datetime,
) -> Session:
    """
    Builds a session around an opaque token. `iat`/`exp` are read when the token is a
    JWT (unverified, bookkeeping only); otherwise the fallback lifetime applies.
    """

    claims = read_unverified_claims(token)
    return Session(
        token=token,
        principal=principal,
        issued_at=_timestamp(claims, "iat") or now,
        expires_at=_timestamp(claims, "exp") or now + fallback_ttl,
        refresh_token=refresh_token,
    )


def _same_session(a: Session, b: Session) -> bool:
    return a.token == b.token and a.principal.id == b.principal.id


def principal_from_json(raw: str) -> Principal:
    data = json.loads(raw)
    if not isinstance(data, dict) or not data.get("id"):
        raise ValueError("user entry without id")
    dealer_id = data.get("dealer_id")
    return Principal(
        id=str(data["id"]),
        display_name=str(data.get("display_name") or data["id"]),
        role=parse_role(data.get("role", "")),
        dealer_id=str(dealer_id) if dealer_id else None,
    )


class SessionStore:
    def __init__(
        self,
        *,
        context_id: str,
        storage: KeyValueStorage,
        cookies: CookieJar,
        settings: Settings,
        gateway: AuthGateway | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._context_id = context_id
        self._storage = storage
        self._cookies = cookies
        self._settings = settings
        self._gateway = gateway
        self._clock = clock

        self._session: Session | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[SessionListener] = []
        self._unsubscribe = storage.subscribe(context_id, self._on_storage_event)

    @property
    def context_id(self) -> str:
        return self._context_id

    @property
    def cookie_lifetime(self) -> timedelta:
        return timedelta(days=self._settings.cookie_max_age_days)

    def current_session(self) -> Session | None:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()

    # -- entry points --------------------------------------------------------------

    async def login(
        self, token: str, principal: Principal, *, refresh_token: str | None = None
    ) -> Session:
        if not token:
            raise Unauthenticated("empty token")
        session = session_from_token(
            token,
            principal,
            refresh_token=refresh_token,
            fallback_ttl=self.cookie_lifetime,
            now=self._clock(),
        )
        await self._serialized(self._install, session)
        log.info(
            "session_login",
            context=self._context_id,
            principal=principal.id,
            role=principal.role.value,
        )
        return session

    async def refresh(
        self,
        token: str,
        *,
        refresh_token: str | None = None,
        replacing: Session | None = None,
    ) -> Session:
        """
        Swaps the token under the current principal. With `replacing`, the swap only
        happens while that session is still the installed one.
        """

        def _replace() -> Session:
            current = self._session
            if current is None:
                raise Unauthenticated("no session to refresh")
            if replacing is not None and not _same_session(current, replacing):
                raise Unauthenticated("session changed while refreshing")
            session = session_from_token(
                token,
                current.principal,
                refresh_token=refresh_token or current.refresh_token,
                fallback_ttl=self.cookie_lifetime,
                now=self._clock(),
            )
            self._install(session)
            return session

        try:
            session = await self._serialized(_replace)
        except Unauthenticated:
            log.warning("session_refresh_discarded", context=self._context_id)
            raise
        log.info("session_refreshed", context=self._context_id, principal=session.principal.id)
        return session

    async def renew(self) -> Session:
        """
        Exchanges the stored refresh token through the gateway. A rejected refresh is an
        unrecoverable authorization failure: the session is destroyed and the error raised.
        A pair obtained for a session that was replaced in the meantime is dropped.
        """

        session = self._session
        if session is None or session.refresh_token is None or self._gateway is None:
            raise Unauthenticated("session cannot be renewed")
        namespace = resolve(session.principal.role).namespace
        try:
            pair = await self._gateway.refresh(
                namespace=namespace, refresh_token=session.refresh_token
            )
        except Unauthenticated:
            cleared = await self._serialized(self._clear_if_current, session)
            if cleared:
                log.info("session_invalidated", context=self._context_id, reason="refresh_rejected")
            raise
        return await self.refresh(pair.token, refresh_token=pair.refresh_token, replacing=session)

    async def logout(self) -> None:
        """
        Always succeeds for the caller. Local state and both mirrors are cleared before
        the remote invalidation call, whose failure is only logged.
        """

        session = await self._serialized(self._clear)
        log.info("session_logout", context=self._context_id)
        if session is None or self._gateway is None:
            return
        try:
            await self._gateway.logout(
                namespace=resolve(session.principal.role).namespace, token=session.token
            )
        except (httpx.HTTPError, DomainError) as e:
            log.warning("remote_logout_failed", context=self._context_id, error=str(e))

    async def invalidate(self, *, reason: str) -> None:
        had_session = await self._serialized(self._clear)
        if had_session is not None:
            log.info("session_invalidated", context=self._context_id, reason=reason)

    async def expire(self) -> bool:
        session = self._session
        if session is None or not session.is_expired(self._clock()):
            return False
        await self.invalidate(reason="expired")
        return True

    async def restore(self) -> Session | None:
        """Startup read of the durable mirror."""

        return await self._serialized(self._load_from_storage)

    # -- internals -----------------------------------------------------------------

    async def _serialized(self, fn: Callable[..., T], *args: Any) -> T:
        async def _run() -> T:
            async with self._lock:
                return fn(*args)

        # Shielded: an abandoned caller does not abort a write halfway through.
        return await asyncio.shield(_run())

    def _install(self, session: Session) -> None:
        s = self._settings
        self._session = session
        self._storage.set(s.user_key, json.dumps(session.principal.to_dict()), source=self._context_id)
        if session.refresh_token:
            self._storage.set(s.refresh_token_key, session.refresh_token, source=self._context_id)
        else:
            self._storage.remove(s.refresh_token_key, source=self._context_id)
        # Token last: siblings re-sync on the token key and must find the user entry ready.
        self._storage.set(s.auth_token_key, session.token, source=self._context_id)
        self._write_cookie(session.token)
        self._notify()

    def _clear(self) -> Session | None:
        s = self._settings
        previous = self._session
        self._session = None
        self._storage.remove(s.auth_token_key, source=self._context_id)
        self._storage.remove(s.refresh_token_key, source=self._context_id)
        self._storage.remove(s.user_key, source=self._context_id)
        self._cookies.delete(s.cookie_name)
        if previous is not None:
            self._notify()
        return previous

    def _clear_if_current(self, session: Session) -> bool:
        current = self._session
        if current is None or not _same_session(current, session):
            return False
        self._clear()
        return True

    def _write_cookie(self, token: str) -> None:
        s = self._settings
        self._cookies.set(
            s.cookie_name,
            token,
            max_age=self.cookie_lifetime,
            path=s.cookie_path,
            same_site=s.cookie_same_site,
        )

    def _load_from_storage(self) -> Session | None:
        s = self._settings
        token = self._storage.get(s.auth_token_key)
        if not token:
            self._session = None
            self._cookies.delete(s.cookie_name)
            return None
        raw_user = self._storage.get(s.user_key)
        try:
            principal = principal_from_json(raw_user or "")
        except (ValueError, ConfigurationError) as e:
            log.warning("durable_session_unreadable", context=self._context_id, error=str(e))
            self._clear()
            return None
        session = session_from_token(
            token,
            principal,
            refresh_token=self._storage.get(s.refresh_token_key),
            fallback_ttl=self.cookie_lifetime,
            now=self._clock(),
        )
        self._session = session
        self._write_cookie(token)
        self._notify()
        return session

    async def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self._settings.auth_token_key:
            return

        def _resync() -> None:
            current = self._session
            token = self._storage.get(self._settings.auth_token_key)
            if token is None:
                self._session = None
                self._cookies.delete(self._settings.cookie_name)
                if current is not None:
                    self._notify()
                log.info("session_sync_logout", context=self._context_id, source=event.source)
                return
            if current is not None and current.token == token:
                self._write_cookie(token)
                return
            self._load_from_storage()
            log.info("session_sync_login", context=self._context_id, source=event.source)

        await self._serialized(_resync)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._session)


# --- Module Notes -----------------------------------------------------------
# Readers call `current_session()` without awaiting; every write runs under the lock
# and is a synchronous block, so a reader never observes a half-installed session.
