"""
evdms_rules.auth.mirrors

Session mirrors: durable key-value storage and the cookie read by edge middleware.

Responsibilities:
- `SharedStorage`: one durable store per origin, shared by every execution context,
  broadcasting `StorageEvent`s to every context except the writer.
- `CookieJar`: per-context cookie mirror with bounded lifetime.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.utils import format_datetime
from typing import Protocol

from evdms_rules.time_utils import Clock, utcnow


@dataclass(frozen=True, slots=True)
class StorageEvent:
    key: str
    old_value: str | None
    new_value: str | None
    source: str


StorageListener = Callable[[StorageEvent], Awaitable[None] | None]


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, *, source: str) -> None: ...

    def remove(self, key: str, *, source: str) -> None: ...

    def subscribe(self, context_id: str, listener: StorageListener) -> Callable[[], None]: ...


class SharedStorage:
    """
    In-process durable storage with browser `storage` event semantics: a write is
    announced to every subscribed context except the one that made it.

    Async listeners run as tasks on the running loop; `settle()` waits for them.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._listeners: list[tuple[str, StorageListener]] = []
        self._pending: set[asyncio.Future[None]] = set()

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def keys(self) -> list[str]:
        return sorted(self._data)

    def set(self, key: str, value: str, *, source: str) -> None:
        old = self._data.get(key)
        self._data[key] = value
        if old != value:
            self._emit(StorageEvent(key=key, old_value=old, new_value=value, source=source))

    def remove(self, key: str, *, source: str) -> None:
        old = self._data.pop(key, None)
        if old is not None:
            self._emit(StorageEvent(key=key, old_value=old, new_value=None, source=source))

    def subscribe(self, context_id: str, listener: StorageListener) -> Callable[[], None]:
        entry = (context_id, listener)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    async def settle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _emit(self, event: StorageEvent) -> None:
        for context_id, listener in list(self._listeners):
            if context_id == event.source:
                continue
            result = listener(event)
            if inspect.isawaitable(result):
                fut = asyncio.ensure_future(result)
                self._pending.add(fut)
                fut.add_done_callback(self._pending.discard)


@dataclass(frozen=True, slots=True)
class Cookie:
    name: str
    value: str
    expires_at: datetime
    path: str = "/"
    same_site: str = "Lax"

    def header(self) -> str:
        return (
            f"{self.name}={self.value}; Path={self.path}; "
            f"Expires={format_datetime(self.expires_at, usegmt=True)}; SameSite={self.same_site}"
        )


class CookieJar:
    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._cookies: dict[str, Cookie] = {}

    def set(
        self,
        name: str,
        value: str,
        *,
        max_age: timedelta,
        path: str = "/",
        same_site: str = "Lax",
    ) -> Cookie:
        cookie = Cookie(
            name=name,
            value=value,
            expires_at=self._clock() + max_age,
            path=path,
            same_site=same_site,
        )
        self._cookies[name] = cookie
        return cookie

    def cookie(self, name: str) -> Cookie | None:
        cookie = self._cookies.get(name)
        if cookie is None:
            return None
        if cookie.expires_at <= self._clock():
            del self._cookies[name]
            return None
        return cookie

    def get(self, name: str) -> str | None:
        cookie = self.cookie(name)
        return cookie.value if cookie else None

    def delete(self, name: str) -> None:
        self._cookies.pop(name, None)


# --- Module Notes -----------------------------------------------------------
# Mirrors never own the session; `evdms_rules.auth.session_store.SessionStore` writes
# them after changing its authoritative state and re-derives them on StorageEvents.
