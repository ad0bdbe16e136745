"""
evdms_rules.auth.routes

Route permission table and menu filtering.

Responsibilities:
- Hold the static `{pattern -> allowed roles}` table, validated once at startup.
- Decide `can_access(route, role)`: exact match, then longest segment-aligned prefix,
  else deny.
- Filter navigation menus so hidden items never reach rendering.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from evdms_rules.auth.models import Principal, Role
from evdms_rules.auth.roles import parse_role
from evdms_rules.errors import ConfigurationError, Forbidden, Unauthenticated
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RoutePermission:
    pattern: str
    allowed_roles: frozenset[Role]


class RouteEntry(BaseModel):
    """Wire shape of one route table entry (JSON input)."""

    model_config = ConfigDict(populate_by_name=True)

    pattern: str = Field(min_length=1)
    allowed_roles: list[str] = Field(alias="allowedRoles")


def normalize_path(route: str) -> str:
    # Query strings, fragments and trailing slashes do not change which page is served.
    path = urlsplit(route).path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


class RouteTable:
    def __init__(self, permissions: Iterable[RoutePermission]) -> None:
        table: dict[str, frozenset[Role]] = {}
        for perm in permissions:
            if not perm.pattern.startswith("/"):
                raise ConfigurationError(f"route pattern must be absolute: {perm.pattern!r}")
            if perm.pattern != normalize_path(perm.pattern):
                raise ConfigurationError(f"route pattern not normalized: {perm.pattern!r}")
            if perm.pattern in table:
                raise ConfigurationError(f"duplicate route pattern: {perm.pattern!r}")
            if not all(isinstance(r, Role) for r in perm.allowed_roles):
                raise ConfigurationError(f"non-Role entry in {perm.pattern!r}")
            table[perm.pattern] = frozenset(perm.allowed_roles)
        self._table = table
        # Longest first so the first segment-aligned hit is the most specific one.
        self._prefixes = sorted(table, key=len, reverse=True)

    @classmethod
    def from_entries(cls, entries: Iterable[RouteEntry | dict]) -> RouteTable:
        perms: list[RoutePermission] = []
        for raw in entries:
            entry = raw if isinstance(raw, RouteEntry) else RouteEntry.model_validate(raw)
            perms.append(
                RoutePermission(
                    pattern=entry.pattern,
                    allowed_roles=frozenset(parse_role(r) for r in entry.allowed_roles),
                )
            )
        return cls(perms)

    def __len__(self) -> int:
        return len(self._table)

    def match(self, route: str) -> str | None:
        """Return the table pattern governing `route`, or None when nothing covers it."""

        path = normalize_path(route)
        if path in self._table:
            return path
        for pattern in self._prefixes:
            if pattern == "/" or path.startswith(pattern + "/"):
                return pattern
        return None

    def can_access(self, route: str, role: Role | None) -> bool:
        if role is None:
            return False
        pattern = self.match(route)
        if pattern is None:
            return False
        return role in self._table[pattern]

    def require(self, route: str, principal: Principal | None) -> None:
        if principal is None:
            raise Unauthenticated("authentication required", route=route)
        if not self.can_access(route, principal.role):
            log.info("route_denied", route=route, role=principal.role.value)
            raise Forbidden("route not permitted for role", route=route, role=principal.role.value)


_ENTRIES_ADAPTER = TypeAdapter(list[RouteEntry])


def load_route_table(path: Path) -> RouteTable:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        entries = _ENTRIES_ADAPTER.validate_python(raw)
    except (OSError, ValueError, ValidationError) as e:
        raise ConfigurationError(f"unreadable route table {path}: {e}") from e
    table = RouteTable.from_entries(entries)
    log.info("route_table_loaded", path=str(path), routes=len(table))
    return table


_CMS = (Role.admin, Role.evm_staff, Role.evm_manager)
_DEALER = (Role.dealer_manager, Role.dealer_staff)


def _perm(pattern: str, *roles: Role) -> RoutePermission:
    return RoutePermission(pattern=pattern, allowed_roles=frozenset(roles))


DEFAULT_ROUTE_TABLE = RouteTable(
    [
        _perm("/dashboard", *_CMS, *_DEALER, Role.customer),
        _perm("/dashboard/vehicles", *_CMS, *_DEALER, Role.customer),
        _perm("/dashboard/inventory", *_CMS, *_DEALER),
        _perm("/dashboard/inventory/request", *_DEALER),
        _perm("/dashboard/dealers", *_CMS),
        _perm("/dashboard/promotions", *_CMS),
        _perm("/dashboard/reports", *_CMS, Role.dealer_manager),
        _perm("/dashboard/customers", *_CMS, *_DEALER),
        _perm("/dashboard/orders", *_CMS, *_DEALER, Role.customer),
        _perm("/dashboard/orders/create", *_DEALER),
        _perm("/dashboard/payments", *_CMS, *_DEALER),
        _perm("/dashboard/quotations", *_DEALER),
        _perm("/dashboard/test-drives", *_DEALER, Role.customer),
        _perm("/dashboard/feedbacks", *_CMS, *_DEALER),
        _perm("/dashboard/users", Role.admin),
    ]
)


@dataclass(frozen=True, slots=True)
class MenuItem:
    title: str
    url: str
    items: tuple[MenuItem, ...] = field(default_factory=tuple)


def filter_menu(items: Sequence[MenuItem], role: Role | None, table: RouteTable) -> list[MenuItem]:
    """
    Keep an item when its own url is accessible or any sub-item survives filtering.
    """

    visible: list[MenuItem] = []
    for item in items:
        subs = tuple(s for s in item.items if table.can_access(s.url, role))
        if subs or table.can_access(item.url, role):
            visible.append(MenuItem(title=item.title, url=item.url, items=subs))
    return visible


DEFAULT_MENU: tuple[MenuItem, ...] = (
    MenuItem("Dashboard", "/dashboard"),
    MenuItem(
        "Vehicles",
        "/dashboard/vehicles",
        (
            MenuItem("Catalog", "/dashboard/vehicles"),
            MenuItem("Comparison", "/dashboard/vehicles/compare"),
        ),
    ),
    MenuItem(
        "Orders",
        "/dashboard/orders",
        (
            MenuItem("All Orders", "/dashboard/orders"),
            MenuItem("Create Quote", "/dashboard/orders/create"),
        ),
    ),
    MenuItem(
        "Inventory",
        "/dashboard/inventory",
        (
            MenuItem("Stock Status", "/dashboard/inventory"),
            MenuItem("Requests", "/dashboard/inventory/request"),
        ),
    ),
    MenuItem("Quotations", "/dashboard/quotations"),
    MenuItem("Customers", "/dashboard/customers"),
    MenuItem("Test Drives", "/dashboard/test-drives"),
    MenuItem("Dealers", "/dashboard/dealers"),
    MenuItem("Promotions", "/dashboard/promotions"),
    MenuItem("Reports", "/dashboard/reports"),
)


# --- Module Notes -----------------------------------------------------------
# The table is fail-closed: a path no pattern covers is denied for every role, and a
# `None` role is denied everything. Menus and the edge guard both go through
# `RouteTable.can_access`, so they can never disagree about visibility.
