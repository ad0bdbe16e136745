"""
evdms_rules.auth.jwt

JWT issuing and validation helpers.

Responsibilities:
- Issue tokens for local/dev scenarios and tests.
- Decode and validate JWTs with strict claim requirements (iss/aud/exp/iat/sub).
- Read claims without verification for session bookkeeping (issued/expiry times).
- Map claims to a `Principal`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError

from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import parse_role
from evdms_rules.settings import Settings


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


class JwtValidationError(Exception):
    pass


def issue_token(
    *,
    cfg: JwtConfig,
    principal: Principal,
    ttl: timedelta = timedelta(hours=1),
) -> str:
    now = datetime.now(tz=UTC)
    payload: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": principal.id,
        "name": principal.display_name,
        "role": principal.role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    if principal.dealer_id is not None:
        payload["dealer_id"] = principal.dealer_id
    return jwt.encode(payload, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(*, cfg: JwtConfig, token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={
                "require": ["exp", "iat", "iss", "aud", "sub"],
            },
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e


def read_unverified_claims(token: str) -> dict[str, Any]:
    """
    Payload of an opaque token, signature NOT checked. Only for bookkeeping such as
    expiry hints; never for authorization. Non-JWT tokens yield an empty dict.
    """

    try:
        return jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        return {}


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    subject = str(payload.get("sub", ""))
    if not subject:
        raise JwtValidationError("missing subject")
    # A signed token carrying a role outside the enumeration is an identity-provider
    # defect: parse_role raises ConfigurationError and it is left to propagate.
    role = parse_role(payload.get("role", ""))
    dealer_id = payload.get("dealer_id")
    return Principal(
        id=subject,
        display_name=str(payload.get("name") or subject),
        role=role,
        dealer_id=str(dealer_id) if dealer_id is not None else None,
    )


# --- Module Notes -----------------------------------------------------------
# Token issuing is used by `api/routers/dev_auth.py` and the test suite. The session
# store only ever calls `read_unverified_claims`.
