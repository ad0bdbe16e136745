from __future__ import annotations

import pytest

from evdms_rules.auth.models import Role
from evdms_rules.auth.roles import (
    LOGIN_PATH,
    Feature,
    Namespace,
    build_api_endpoint,
    can_use_feature,
    parse_role,
    resolve,
)
from evdms_rules.errors import ConfigurationError


@pytest.mark.parametrize(
    ("role", "namespace"),
    [
        (Role.admin, Namespace.cms),
        (Role.evm_staff, Namespace.cms),
        (Role.evm_manager, Namespace.cms),
        (Role.dealer_manager, Namespace.dealer),
        (Role.dealer_staff, Namespace.dealer),
        (Role.customer, Namespace.customer),
    ],
)
def test_every_role_resolves_to_one_namespace(role: Role, namespace: Namespace) -> None:
    resolution = resolve(role)
    assert resolution.namespace is namespace
    assert resolution.base_path == "/dashboard"
    assert resolution.api_prefix == f"/api/{namespace.value}"


def test_no_role_resolves_to_login_with_no_features() -> None:
    resolution = resolve(None)
    assert resolution.namespace is Namespace.cms
    assert resolution.base_path == LOGIN_PATH
    assert resolution.features == frozenset()


def test_non_role_value_fails_loudly() -> None:
    with pytest.raises(ConfigurationError):
        resolve("Admin")  # type: ignore[arg-type]


def test_parse_role_is_case_insensitive_and_accepts_ordinals() -> None:
    assert parse_role("DEALERMANAGER") is Role.dealer_manager
    assert parse_role("evmstaff") is Role.evm_staff
    assert parse_role(" Customer ") is Role.customer
    assert parse_role(0) is Role.admin
    assert parse_role(5) is Role.customer


@pytest.mark.parametrize("raw", ["Root", "", 6, -1, True])
def test_parse_role_rejects_unknown_values(raw: object) -> None:
    with pytest.raises(ConfigurationError):
        parse_role(raw)  # type: ignore[arg-type]


def test_build_api_endpoint_uses_role_namespace() -> None:
    assert build_api_endpoint("orders", Role.dealer_staff) == "/api/dealer/orders"
    assert build_api_endpoint("/vehicles", Role.customer) == "/api/customer/vehicles"
    assert build_api_endpoint("auth/login", None) == "/api/cms/auth/login"


def test_feature_permissions() -> None:
    assert can_use_feature(Feature.override_debt_limit, Role.admin)
    assert not can_use_feature(Feature.override_debt_limit, Role.evm_manager)
    assert can_use_feature(Feature.manage_orders, Role.dealer_manager)
    assert not can_use_feature(Feature.manage_orders, Role.dealer_staff)
    assert not can_use_feature(Feature.view_vehicles, None)

    features = resolve(Role.dealer_staff).features
    assert Feature.create_orders in features
    assert Feature.manage_dealers not in features
