"""Integration tests for invoice history and receipts."""
from uuid import uuid4

import pytest
from httpx import AsyncClient


async def _subscribe(async_client: AsyncClient, headers: dict, plan) -> dict:
    response = await async_client.post("/v1/billing/subscribe", json={"plan_id": str(plan.id)}, headers=headers)
    assert response.status_code == 200
    return response.json()["invoice"]


@pytest.mark.asyncio
async def test_list_invoices(async_client: AsyncClient, auth_headers, test_plan, test_plan_premium) -> None:
    """Test GET /v1/billing/invoices lists the caller's invoices, newest first."""
    first = await _subscribe(async_client, auth_headers, test_plan)
    second = await _subscribe(async_client, auth_headers, test_plan_premium)

    response = await async_client.get("/v1/billing/invoices", headers=auth_headers)

    assert response.status_code == 200
    invoices = response.json()["invoices"]
    assert [invoice["id"] for invoice in invoices] == [second["id"], first["id"]]
    assert invoices[1]["plan_snapshot"]["name"] == "Creator"

    limited = await async_client.get("/v1/billing/invoices", params={"limit": 1}, headers=auth_headers)
    assert len(limited.json()["invoices"]) == 1


@pytest.mark.asyncio
async def test_get_invoice_json(async_client: AsyncClient, auth_headers, test_plan) -> None:
    """Test a single invoice is returned with its line items."""
    created = await _subscribe(async_client, auth_headers, test_plan)

    response = await async_client.get(f"/v1/billing/invoices/{created['id']}", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == created["id"]
    assert body["status"] == "paid"
    assert body["amount_cents"] == 1999
    assert body["items"][0]["description"].startswith("Creator subscription (")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params,headers",
    [
        ({"format": "html"}, {}),
        ({}, {"Accept": "text/html,application/xhtml+xml"}),
    ],
)
async def test_get_invoice_html_receipt(
    async_client: AsyncClient, auth_headers, test_plan, params, headers
) -> None:
    """Test the HTML receipt is served on request."""
    created = await _subscribe(async_client, auth_headers, test_plan)

    response = await async_client.get(
        f"/v1/billing/invoices/{created['id']}", params=params, headers={**auth_headers, **headers}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "$19.99 USD" in response.text
    assert "Creator subscription" in response.text
    assert created["id"] in response.text


@pytest.mark.asyncio
async def test_other_users_invoice_is_hidden(
    async_client: AsyncClient, auth_headers, make_auth_headers, test_plan
) -> None:
    """Test an invoice is only visible to its owner."""
    created = await _subscribe(async_client, auth_headers, test_plan)

    response = await async_client.get(
        f"/v1/billing/invoices/{created['id']}", headers=make_auth_headers(uuid4(), email="other@example.com")
    )

    assert response.status_code == 404
    assert response.json()["details"][0]["code"] == "invoice_not_found"


@pytest.mark.asyncio
async def test_unknown_invoice(async_client: AsyncClient, auth_headers) -> None:
    """Test an unknown invoice id is 404."""
    response = await async_client.get(f"/v1/billing/invoices/{uuid4()}", headers=auth_headers)

    assert response.status_code == 404
