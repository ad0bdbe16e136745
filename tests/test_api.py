"""
tests.test_api

End-to-end HTTP tests over a temp-file SQLite database.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from evdms_rules.auth.models import Role

AuthHeaders = Callable[..., dict[str, str]]


def _future(days: int = 7) -> str:
    return (datetime.now(tz=UTC) + timedelta(days=days)).isoformat()


def _quotation_body(**overrides) -> dict:
    body = {
        "customer_id": "cust-1",
        "vehicle_id": "vf-8",
        "variant_id": "plus",
        "color_id": "red",
        "base_price": 1_000_000,
        "variant_price": 100_000,
        "color_price": 50_000,
        "dealer_discount": 50_000,
        "promotion_discount": 50_000,
        "valid_until": _future(),
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: httpx.AsyncClient) -> None:
    r = await client.get("/v1/session/resolution")
    assert r.status_code == 401
    assert r.json()["error"] == "unauthenticated"
    assert r.headers["www-authenticate"] == "Bearer"

    r = await client.get("/v1/session/resolution", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_dev_token_and_resolution(client: httpx.AsyncClient) -> None:
    r = await client.post(
        "/v1/dev/token",
        json={"subject": "u-9", "role": "DealerStaff", "dealer_id": "d-1"},
    )
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await client.get("/v1/session/resolution", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    body = r.json()
    assert body["namespace"] == "dealer"
    assert body["api_prefix"] == "/api/dealer"
    assert body["principal"]["dealer_id"] == "d-1"
    assert "create_orders" in body["features"]

    r = await client.post("/v1/dev/token", json={"subject": "u-9", "role": "Wizard"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_navigation(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    r = await client.get("/v1/navigation/menu", headers=auth(Role.customer))
    assert [i["title"] for i in r.json()] == ["Dashboard", "Vehicles", "Orders", "Test Drives"]

    r = await client.get(
        "/v1/navigation/access",
        params={"path": "/dashboard/users"},
        headers=auth(Role.evm_staff),
    )
    assert r.json() == {
        "path": "/dashboard/users",
        "pattern": "/dashboard/users",
        "allowed": False,
        "redirect": "/unauthorized",
    }


@pytest.mark.asyncio
async def test_pricing_endpoints(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    headers = auth(Role.dealer_staff, dealer_id="d-1")
    r = await client.post(
        "/v1/pricing/quote",
        json={"base_price": 100_000, "dealer_discount": 80_000, "promotion_discount": 40_000},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["final_price"] == 0
    assert r.json()["clamped"] is True

    r = await client.post("/v1/pricing/quote", json={"base_price": -1}, headers=headers)
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_amount"

    r = await client.post(
        "/v1/pricing/installment",
        json={"order_total": 1_500_000, "down_payment": 300_000, "annual_rate_percent": "12", "months": 12},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["monthly_payment"] == 106_619


@pytest.mark.asyncio
async def test_order_lifecycle_over_http(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    staff = auth(Role.dealer_staff, subject="staff-1", dealer_id="d-1")
    manager = auth(Role.dealer_manager, subject="mgr-1", dealer_id="d-1")

    r = await client.post(
        "/v1/orders",
        json={"customer_id": "cust-1", "vehicle_id": "vf-8", "total_amount": 1_050_000},
        headers=staff,
    )
    assert r.status_code == 201
    order = r.json()
    assert order["status"] == "pending"
    assert order["dealer_id"] == "d-1"
    assert order["allowed_transitions"] == []

    r = await client.post(
        f"/v1/orders/{order['id']}/transition", json={"status": "approved"}, headers=staff
    )
    assert r.status_code == 409
    assert r.json()["current"] == "pending"

    r = await client.post(
        f"/v1/orders/{order['id']}/transition",
        json={"status": "approved", "expected": "pending"},
        headers=manager,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    # A second writer still holding the old state loses.
    r = await client.post(
        f"/v1/orders/{order['id']}/transition",
        json={"status": "cancelled", "expected": "pending"},
        headers=manager,
    )
    assert r.status_code == 409
    assert r.json()["current"] == "approved"

    r = await client.get(f"/v1/orders/{order['id']}", headers=auth(Role.evm_staff))
    assert r.json()["status"] == "approved"

    # Other dealers and other customers do not see the order.
    r = await client.get(f"/v1/orders/{order['id']}", headers=auth(Role.dealer_manager, dealer_id="d-2"))
    assert r.status_code == 404
    r = await client.get(f"/v1/orders/{order['id']}", headers=auth(Role.customer, subject="cust-2"))
    assert r.status_code == 404
    r = await client.get(f"/v1/orders/{order['id']}", headers=auth(Role.customer, subject="cust-1"))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_customers_cannot_create_orders(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    r = await client.post(
        "/v1/orders",
        json={"customer_id": "cust-1", "vehicle_id": "vf-8", "total_amount": 1},
        headers=auth(Role.customer),
    )
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_quotation_flow_and_conversion(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    staff = auth(Role.dealer_staff, subject="staff-1", dealer_id="d-1")
    customer = auth(Role.customer, subject="cust-1")

    r = await client.post("/v1/quotations", json=_quotation_body(final_price=1), headers=staff)
    assert r.status_code == 201
    q = r.json()
    assert q["final_price"] == 1_050_000
    assert q["status"] == "draft"

    r = await client.post(f"/v1/quotations/{q['id']}/order", json={}, headers=staff)
    assert r.status_code == 409

    r = await client.post(
        f"/v1/quotations/{q['id']}/transition", json={"status": "sent"}, headers=staff
    )
    assert r.json()["status"] == "sent"
    r = await client.post(
        f"/v1/quotations/{q['id']}/transition", json={"status": "accepted"}, headers=customer
    )
    assert r.status_code == 200
    assert r.json()["status"] == "accepted"

    r = await client.post(
        f"/v1/quotations/{q['id']}/order", json={"payment_method": "installment"}, headers=staff
    )
    assert r.status_code == 201
    order = r.json()
    assert order["total_amount"] == 1_050_000
    assert order["payment_method"] == "installment"

    r = await client.post(f"/v1/quotations/{q['id']}/order", json={}, headers=staff)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_overdue_quotation(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    staff = auth(Role.dealer_staff, subject="staff-1", dealer_id="d-1")
    r = await client.post(
        "/v1/quotations",
        json=_quotation_body(valid_until=(datetime.now(tz=UTC) - timedelta(minutes=1)).isoformat()),
        headers=staff,
    )
    q = r.json()
    assert q["status"] == "expired"
    assert q["stored_status"] == "draft"

    r = await client.post(
        f"/v1/quotations/{q['id']}/transition", json={"status": "sent"}, headers=staff
    )
    assert r.status_code == 409
    assert r.json()["error"] == "expired"

    r = await client.post(
        f"/v1/quotations/{q['id']}/transition", json={"status": "expired"}, headers=staff
    )
    assert r.status_code == 200
    assert r.json()["stored_status"] == "expired"


@pytest.mark.asyncio
async def test_dealer_debt_over_http(client: httpx.AsyncClient, auth: AuthHeaders) -> None:
    evm = auth(Role.evm_staff, subject="evm-1")
    admin = auth(Role.admin, subject="admin-1")

    r = await client.post("/v1/dealers/d-1/account", json={"debt_limit": 100}, headers=evm)
    assert r.status_code == 200
    assert r.json()["available_credit"] == 100

    r = await client.post("/v1/dealers/d-1/charges", json={"amount": 90}, headers=evm)
    assert r.json()["account"]["current_debt"] == 90

    r = await client.post("/v1/dealers/d-1/charges", json={"amount": 15}, headers=evm)
    assert r.status_code == 422
    assert r.json()["error"] == "debt_limit_exceeded"

    r = await client.post(
        "/v1/dealers/d-1/charges", json={"amount": 15, "override": True}, headers=evm
    )
    assert r.status_code == 403

    r = await client.post(
        "/v1/dealers/d-1/charges", json={"amount": 15, "override": True}, headers=admin
    )
    assert r.status_code == 200
    assert r.json()["overridden"] is True
    assert r.json()["account"]["current_debt"] == 105

    r = await client.post("/v1/dealers/d-1/payments", json={"amount": 200}, headers=evm)
    assert r.status_code == 422

    r = await client.get("/v1/dealers/d-1/account", headers=auth(Role.dealer_staff, dealer_id="d-1"))
    assert r.json()["current_debt"] == 105
    r = await client.get("/v1/dealers/d-1/account", headers=auth(Role.dealer_staff, dealer_id="d-2"))
    assert r.status_code == 404
    r = await client.get("/v1/dealers/d-9/account", headers=evm)
    assert r.status_code == 404

    r = await client.get("/v1/dealers/d-1/ledger", headers=auth(Role.dealer_manager, dealer_id="d-1"))
    assert r.status_code == 200
    entries = r.json()
    assert sorted((e["kind"], e["amount"], e["override"]) for e in entries) == [
        ("charge", 15, True),
        ("charge", 90, False),
    ]
    assert {e["actor"] for e in entries} == {"evm-1", "admin-1"}
    r = await client.get("/v1/dealers/d-1/ledger", headers=auth(Role.dealer_staff, dealer_id="d-2"))
    assert r.status_code == 404
