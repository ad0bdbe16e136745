"""
evdms_rules.auth.guard

Routing decisions for the hosting environment (edge middleware and page guards).

Responsibilities:
- Redirect unauthenticated requests for protected paths to the login entry point,
  preserving the requested path.
- Redirect authenticated requests for login-only paths to the namespace default route.
- Redirect authenticated-but-denied requests to the unauthorized page.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from urllib.parse import urlencode

from evdms_rules.auth.models import Role
from evdms_rules.auth.roles import NAMESPACE_BASE_PATHS, Namespace, resolve
from evdms_rules.auth.routes import RouteTable, normalize_path
from evdms_rules.settings import Settings


class GuardAction(enum.StrEnum):
    allow = "allow"
    redirect = "redirect"


@dataclass(frozen=True, slots=True)
class GuardDecision:
    action: GuardAction
    location: str | None = None

    @property
    def allowed(self) -> bool:
        return self.action is GuardAction.allow


ALLOW = GuardDecision(GuardAction.allow)


def _under(path: str, prefixes: list[str]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


def _landing_path(role: Role | None) -> str:
    # Without a known role, land on the cms namespace (the unauthenticated default).
    if role is None:
        return NAMESPACE_BASE_PATHS[Namespace.cms]
    return resolve(role).base_path


def login_redirect(path: str, settings: Settings) -> str:
    return f"{settings.login_path}?{urlencode({'redirect': path})}"


def evaluate(
    path: str,
    *,
    has_session: bool,
    role: Role | None,
    table: RouteTable,
    settings: Settings,
) -> GuardDecision:
    """
    `has_session` is a routing hint (cookie present); `role` is only known where the
    authoritative session is available. At the edge `role` is None and only the
    presence checks apply.
    """

    clean = normalize_path(path)
    if _under(clean, settings.protected_prefixes):
        if not has_session:
            return GuardDecision(GuardAction.redirect, login_redirect(clean, settings))
        if role is not None and not table.can_access(clean, role):
            return GuardDecision(GuardAction.redirect, settings.unauthorized_path)
        return ALLOW
    if _under(clean, settings.login_only_prefixes) and has_session:
        return GuardDecision(GuardAction.redirect, _landing_path(role))
    return ALLOW


# --- Module Notes -----------------------------------------------------------
# A cookie hint never grants access on its own: with a role present the route table
# still decides, and the resource-serving backend validates the token on every call.
