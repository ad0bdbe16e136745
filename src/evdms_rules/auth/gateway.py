"""
evdms_rules.auth.gateway

HTTP client boundary to the identity provider.

Responsibilities:
- Call the per-namespace login/refresh/logout endpoints (`/api/<ns>/auth/...`).
- Unwrap the provider's response envelope and map it to a typed `LoginResult`.
- Reject logins whose role does not belong to the namespace that was asked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from evdms_rules.auth.jwt import read_unverified_claims
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Namespace, parse_role, resolve
from evdms_rules.errors import Forbidden, Unauthenticated
from evdms_rules.observability.logging import get_logger
from evdms_rules.settings import Settings

log = get_logger(__name__)

# Claim names emitted by the identity provider (WS-Federation style URIs).
_CLAIM_ID = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"
_CLAIM_NAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"


@dataclass(frozen=True, slots=True)
class LoginResult:
    token: str
    refresh_token: str | None
    principal: Principal


@dataclass(frozen=True, slots=True)
class TokenPair:
    token: str
    refresh_token: str | None


def _unwrap(body: Any) -> dict[str, Any]:
    # Responses arrive either as `{"success":..., "data": {...}}` or as the bare object.
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    if isinstance(body, dict):
        return body
    raise Unauthenticated("malformed identity provider response")


def _principal_from_login(data: dict[str, Any], token: str) -> Principal:
    claims = read_unverified_claims(token)
    user_id = claims.get(_CLAIM_ID) or claims.get("sub") or data.get("userId")
    if not user_id:
        raise Unauthenticated("login token carries no subject")
    dealer_id = data.get("dealerId") or claims.get("dealer_id")
    return Principal(
        id=str(user_id),
        display_name=str(claims.get(_CLAIM_NAME) or claims.get("name") or user_id),
        role=parse_role(data.get("role", claims.get("role", ""))),
        dealer_id=str(dealer_id) if dealer_id else None,
    )


class AuthGateway:
    def __init__(self, *, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings, **client_kwargs: Any) -> AuthGateway:
        return cls(http=httpx.AsyncClient(base_url=settings.auth_api_base_url, **client_kwargs))

    async def login(self, *, namespace: Namespace, username: str, password: str) -> LoginResult:
        r = await self._http.post(
            f"/api/{namespace.value}/auth/login",
            json={"username": username, "password": password},
        )
        if r.status_code in (400, 401, 403):
            raise Unauthenticated("invalid credentials", namespace=namespace.value)
        r.raise_for_status()

        data = _unwrap(r.json())
        token = data.get("token")
        if not token:
            raise Unauthenticated("login response without token")
        principal = _principal_from_login(data, str(token))

        # A dealer account must not obtain a cms session (and vice versa).
        if resolve(principal.role).namespace is not namespace:
            log.warning(
                "login_namespace_mismatch",
                namespace=namespace.value,
                role=principal.role.value,
            )
            raise Forbidden(
                f"{principal.role.value} cannot sign in to {namespace.value}",
                namespace=namespace.value,
            )

        refresh = data.get("refreshToken")
        return LoginResult(
            token=str(token),
            refresh_token=str(refresh) if refresh else None,
            principal=principal,
        )

    async def refresh(self, *, namespace: Namespace, refresh_token: str) -> TokenPair:
        r = await self._http.post(
            f"/api/{namespace.value}/auth/refresh-token",
            json={"refreshToken": refresh_token},
        )
        if r.status_code in (400, 401, 403):
            raise Unauthenticated("refresh token rejected", namespace=namespace.value)
        r.raise_for_status()
        data = _unwrap(r.json())
        token = data.get("token")
        if not token:
            raise Unauthenticated("refresh response without token")
        refresh = data.get("refreshToken")
        return TokenPair(token=str(token), refresh_token=str(refresh) if refresh else None)

    async def logout(self, *, namespace: Namespace, token: str) -> None:
        r = await self._http.post(
            f"/api/{namespace.value}/auth/logout",
            headers={"Authorization": f"Bearer {token}"},
            json={},
        )
        r.raise_for_status()


# --- Module Notes -----------------------------------------------------------
# Timeouts and retries belong to the injected httpx.AsyncClient, configured by the
# composition root; this class adds no retry loop of its own.
