"""
evdms_rules.api.routers.navigation

Session resolution and navigation endpoints.

Responsibilities:
- Report the caller's namespace, base route, API prefix and features.
- Serve the role-filtered navigation menu.
- Answer page-access questions against the route table.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from evdms_rules.api.deps import route_table_dep, settings_dep
from evdms_rules.auth.deps import get_principal
from evdms_rules.auth.guard import evaluate
from evdms_rules.auth.models import Principal
from evdms_rules.auth.roles import resolve
from evdms_rules.auth.routes import DEFAULT_MENU, MenuItem, RouteTable, filter_menu
from evdms_rules.settings import Settings

router = APIRouter(prefix="/v1", tags=["navigation"])


class ResolutionResponse(BaseModel):
    principal: dict[str, Any]
    namespace: str
    base_path: str
    api_prefix: str
    features: list[str]


class MenuItemResponse(BaseModel):
    title: str
    url: str
    items: list[MenuItemResponse] = []


class AccessResponse(BaseModel):
    path: str
    pattern: str | None
    allowed: bool
    redirect: str | None


def _menu_item(item: MenuItem) -> MenuItemResponse:
    return MenuItemResponse(
        title=item.title, url=item.url, items=[_menu_item(s) for s in item.items]
    )


@router.get("/session/resolution", response_model=ResolutionResponse)
async def session_resolution(
    principal: Principal = Depends(get_principal),
    settings: Settings = Depends(settings_dep),
) -> ResolutionResponse:
    resolution = resolve(principal.role, login_path=settings.login_path)
    return ResolutionResponse(
        principal=principal.to_dict(),
        namespace=resolution.namespace.value,
        base_path=resolution.base_path,
        api_prefix=resolution.api_prefix,
        features=sorted(f.value for f in resolution.features),
    )


@router.get("/navigation/menu", response_model=list[MenuItemResponse])
async def navigation_menu(
    principal: Principal = Depends(get_principal),
    table: RouteTable = Depends(route_table_dep),
) -> list[MenuItemResponse]:
    return [_menu_item(i) for i in filter_menu(DEFAULT_MENU, principal.role, table)]


@router.get("/navigation/access", response_model=AccessResponse)
async def navigation_access(
    path: str = Query(min_length=1, max_length=2048),
    principal: Principal = Depends(get_principal),
    table: RouteTable = Depends(route_table_dep),
    settings: Settings = Depends(settings_dep),
) -> AccessResponse:
    decision = evaluate(path, has_session=True, role=principal.role, table=table, settings=settings)
    return AccessResponse(
        path=path,
        pattern=table.match(path),
        allowed=table.can_access(path, principal.role),
        redirect=decision.location,
    )
