"""
evdms_rules.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
- Enforce feature permissions via a reusable dependency factory.
"""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from evdms_rules.auth.jwt import (
    JwtConfig,
    JwtValidationError,
    decode_and_validate,
    principal_from_claims,
)
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import Feature, can_use_feature
from evdms_rules.errors import Forbidden, Unauthenticated
from evdms_rules.api.deps import settings_dep
from evdms_rules.settings import Settings

_bearer = HTTPBearer(auto_error=False)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(settings_dep),
) -> Principal:
    if creds is None or not creds.credentials:
        raise Unauthenticated("missing bearer token")
    try:
        payload = decode_and_validate(cfg=JwtConfig.from_settings(settings), token=creds.credentials)
        return principal_from_claims(payload)
    except JwtValidationError as e:
        raise Unauthenticated(f"invalid token: {e}") from e


def require_feature(feature: Feature):
    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        if not can_use_feature(feature, principal.role):
            raise Forbidden(f"{feature.value} not permitted", role=principal.role.value)
        return principal

    return _dep


# --- Module Notes -----------------------------------------------------------
# Domain errors raised here are rendered by the handler in `evdms_rules.api.errors`,
# so auth failures share the same response shape as rule violations.
