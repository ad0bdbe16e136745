"""
evdms_rules.auth.roles

Role resolution: role -> API namespace, base route and feature permissions.

Responsibilities:
- Map every `Role` to exactly one `Namespace` through a table validated at import.
- Parse identity-provider role strings without silent defaults.
- Answer feature-level permission questions (`can_use_feature`).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from evdms_rules.auth.models import Role
from evdms_rules.errors import ConfigurationError

LOGIN_PATH = "/login"


class Namespace(enum.StrEnum):
    cms = "cms"
    dealer = "dealer"
    customer = "customer"


@dataclass(frozen=True, slots=True)
class RoleResolution:
    namespace: Namespace
    base_path: str
    features: frozenset[Feature] = frozenset()

    @property
    def api_prefix(self) -> str:
        return f"/api/{self.namespace.value}"


ROLE_NAMESPACES: Mapping[Role, Namespace] = MappingProxyType(
    {
        Role.admin: Namespace.cms,
        Role.evm_staff: Namespace.cms,
        Role.evm_manager: Namespace.cms,
        Role.dealer_manager: Namespace.dealer,
        Role.dealer_staff: Namespace.dealer,
        Role.customer: Namespace.customer,
    }
)

NAMESPACE_BASE_PATHS: Mapping[Namespace, str] = MappingProxyType(
    {
        Namespace.cms: "/dashboard",
        Namespace.dealer: "/dashboard",
        Namespace.customer: "/dashboard",
    }
)

# Backend enum ordinals (UserRole) as sent by older identity endpoints.
_ROLE_ORDINALS: tuple[Role, ...] = (
    Role.admin,
    Role.evm_staff,
    Role.evm_manager,
    Role.dealer_manager,
    Role.dealer_staff,
    Role.customer,
)


class Feature(enum.StrEnum):
    manage_vehicles = "manage_vehicles"
    view_vehicles = "view_vehicles"
    manage_inventory = "manage_inventory"
    view_inventory = "view_inventory"
    request_vehicles = "request_vehicles"
    manage_dealers = "manage_dealers"
    manage_orders = "manage_orders"
    view_orders = "view_orders"
    create_orders = "create_orders"
    manage_quotations = "manage_quotations"
    view_quotations = "view_quotations"
    manage_customers = "manage_customers"
    manage_test_drives = "manage_test_drives"
    request_test_drives = "request_test_drives"
    manage_promotions = "manage_promotions"
    view_promotions = "view_promotions"
    view_reports = "view_reports"
    override_debt_limit = "override_debt_limit"


_CMS = frozenset({Role.admin, Role.evm_staff, Role.evm_manager})
_DEALER = frozenset({Role.dealer_manager, Role.dealer_staff})
_ALL = frozenset(Role)

FEATURE_PERMISSIONS: Mapping[Feature, frozenset[Role]] = MappingProxyType(
    {
        Feature.manage_vehicles: _CMS,
        Feature.view_vehicles: _ALL,
        Feature.manage_inventory: _CMS,
        Feature.view_inventory: _CMS | _DEALER,
        Feature.request_vehicles: _DEALER,
        Feature.manage_dealers: _CMS,
        # Order status changes are closed to DealerStaff (read-only on status).
        Feature.manage_orders: _CMS | {Role.dealer_manager},
        Feature.view_orders: _ALL,
        Feature.create_orders: _DEALER,
        Feature.manage_quotations: _DEALER,
        Feature.view_quotations: _DEALER | {Role.customer},
        Feature.manage_customers: _CMS | _DEALER,
        Feature.manage_test_drives: _DEALER,
        Feature.request_test_drives: frozenset({Role.customer}),
        Feature.manage_promotions: _CMS,
        Feature.view_promotions: _ALL,
        Feature.view_reports: _CMS,
        Feature.override_debt_limit: frozenset({Role.admin}),
    }
)


def _validate_tables() -> None:
    missing_roles = set(Role) - set(ROLE_NAMESPACES)
    if missing_roles:
        raise ConfigurationError(f"roles without namespace: {sorted(missing_roles)}")
    missing_paths = set(Namespace) - set(NAMESPACE_BASE_PATHS)
    if missing_paths:
        raise ConfigurationError(f"namespaces without base path: {sorted(missing_paths)}")
    missing_features = set(Feature) - set(FEATURE_PERMISSIONS)
    if missing_features:
        raise ConfigurationError(f"features without permissions: {sorted(missing_features)}")


_validate_tables()


def parse_role(raw: str | int) -> Role:
    """
    Convert an identity-provider role value into `Role`.

    Accepts the wire name in any case ("DEALERMANAGER") or the backend enum ordinal.
    Anything else is a contract violation with the identity provider.
    """

    if isinstance(raw, bool):
        raise ConfigurationError(f"unknown role: {raw!r}")
    if isinstance(raw, int):
        if 0 <= raw < len(_ROLE_ORDINALS):
            return _ROLE_ORDINALS[raw]
        raise ConfigurationError(f"unknown role ordinal: {raw}")
    key = str(raw).strip().casefold()
    for role in Role:
        if role.value.casefold() == key:
            return role
    raise ConfigurationError(f"unknown role: {raw!r}")


def resolve(role: Role | None, *, login_path: str = LOGIN_PATH) -> RoleResolution:
    """
    Pure and total over `Role | None`.

    `None` (no principal) resolves to the cms namespace at the login entry point; it
    carries no permissions.
    """

    if role is None:
        return RoleResolution(namespace=Namespace.cms, base_path=login_path)
    if not isinstance(role, Role):
        raise ConfigurationError(f"not a Role: {role!r}")
    namespace = ROLE_NAMESPACES[role]
    return RoleResolution(
        namespace=namespace,
        base_path=NAMESPACE_BASE_PATHS[namespace],
        features=frozenset(f for f, roles in FEATURE_PERMISSIONS.items() if role in roles),
    )


def build_api_endpoint(endpoint: str, role: Role | None) -> str:
    return f"{resolve(role).api_prefix}/{endpoint.lstrip('/')}"


def can_use_feature(feature: Feature, role: Role | None) -> bool:
    if role is None:
        return False
    return role in FEATURE_PERMISSIONS[feature]


# --- Module Notes -----------------------------------------------------------
# Adding a Role without extending ROLE_NAMESPACES fails at import, not at the
# first request that happens to carry the new role.
