"""Integration tests for the stock source catalog."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.models.stock_source import StockSource, StockSourceAudit
from tests.utils.factories import StockSourceFactory


@pytest.fixture
def make_source(db_session: AsyncSession):
    """Create a committed stock source."""

    async def _make(key: str, name: str, cost: float, active: bool = True, icon_url: str | None = None) -> StockSource:
        source = StockSource(key=key, name=name, cost=cost, icon=key, icon_url=icon_url, active=active)
        db_session.add(source)
        await db_session.commit()
        return source

    return _make


async def _audit(session_factory: async_sessionmaker, key: str) -> list[StockSourceAudit]:
    async with session_factory() as session:
        result = await session.execute(
            select(StockSourceAudit).where(StockSourceAudit.stock_source_key == key).order_by(StockSourceAudit.action)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_public_list_shows_active_sites_by_name(
    async_client: AsyncClient, auth_headers, make_source
) -> None:
    """Test users see active sites only, alphabetically, with an icon URL."""
    await make_source("shutterstock", "Shutterstock", 10)
    await make_source("adobestock", "Adobe Stock", 12.5, icon_url="https://cdn.test/adobe.svg")
    await make_source("alamy", "Alamy", 3, active=False)

    response = await async_client.get("/v1/stock/sources", headers=auth_headers)

    assert response.status_code == 200
    sites = response.json()["sites"]
    assert [site["key"] for site in sites] == ["adobestock", "shutterstock"]
    assert sites[0]["cost"] == 12.5
    assert sites[0]["icon_url"] == "https://cdn.test/adobe.svg"
    assert sites[1]["icon_url"] == "https://nehtw.com/assets/icons/shutterstock.png"


@pytest.mark.asyncio
async def test_public_list_requires_token(async_client: AsyncClient) -> None:
    """Test the site list is for signed-in users."""
    response = await async_client.get("/v1/stock/sources")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_list_includes_hidden_sites_cheapest_first(
    async_client: AsyncClient, admin_headers, make_source
) -> None:
    """Test operators see every site ordered by price."""
    await make_source("shutterstock", "Shutterstock", 10)
    await make_source("alamy", "Alamy", 3, active=False)

    response = await async_client.get("/v1/admin/stock-sources", headers=admin_headers)

    assert response.status_code == 200
    sites = response.json()["sites"]
    assert [(site["key"], site["active"]) for site in sites] == [("alamy", False), ("shutterstock", True)]
    assert sites[0]["icon_url"] is None


@pytest.mark.asyncio
async def test_admin_routes_require_admin(async_client: AsyncClient, auth_headers, make_source) -> None:
    """Test regular users cannot read or change the catalog."""
    await make_source("shutterstock", "Shutterstock", 10)

    listing = await async_client.get("/v1/admin/stock-sources", headers=auth_headers)
    cost = await async_client.patch("/v1/admin/stock-sources/shutterstock/cost", json={"cost": 1}, headers=auth_headers)
    audit = await async_client.get("/v1/admin/stock-sources/audit", headers=auth_headers)

    assert [listing.status_code, cost.status_code, audit.status_code] == [403, 403, 403]
    assert cost.json()["details"][0]["code"] == "insufficient_permissions"


@pytest.mark.asyncio
async def test_admin_creates_source(
    async_client: AsyncClient, session_factory: async_sessionmaker, admin_headers
) -> None:
    """Test listing a new site records who added it."""
    payload = StockSourceFactory.create({"key": "Freepik", "cost": 4})

    response = await async_client.post("/v1/admin/stock-sources", json=payload, headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["key"] == "freepik"
    assert response.json()["cost"] == 4

    entries = await _audit(session_factory, "freepik")
    assert [(entry.action, entry.new_value) for entry in entries] == [("created", "Freepik")]
    assert entries[0].changed_by is not None


@pytest.mark.asyncio
async def test_admin_create_rejects_unknown_or_duplicate_key(
    async_client: AsyncClient, admin_headers, make_source
) -> None:
    """Test only sites that links resolve to can be listed, once each."""
    await make_source("freepik", "Freepik", 4)

    unknown = await async_client.post(
        "/v1/admin/stock-sources", json=StockSourceFactory.create({"key": "pixabay"}), headers=admin_headers
    )
    duplicate = await async_client.post(
        "/v1/admin/stock-sources", json=StockSourceFactory.create(), headers=admin_headers
    )

    assert unknown.status_code == 400
    assert unknown.json()["details"][0]["code"] == "unsupported_source"
    assert duplicate.status_code == 409
    assert duplicate.json()["details"][0]["code"] == "duplicate_resource"


@pytest.mark.asyncio
async def test_cost_update_is_audited(
    async_client: AsyncClient, session_factory: async_sessionmaker, admin_headers, make_source
) -> None:
    """Test a price change is saved with the old and new value."""
    await make_source("shutterstock", "Shutterstock", 10)

    response = await async_client.patch(
        "/v1/admin/stock-sources/shutterstock/cost", json={"cost": 12.5}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["cost"] == 12.5

    entries = await _audit(session_factory, "shutterstock")
    assert [(entry.action, entry.old_value, entry.new_value) for entry in entries] == [
        ("cost_update", "10.0", "12.5")
    ]


@pytest.mark.asyncio
async def test_cost_must_be_non_negative(async_client: AsyncClient, admin_headers, make_source) -> None:
    """Test a negative price fails validation."""
    await make_source("shutterstock", "Shutterstock", 10)

    response = await async_client.patch(
        "/v1/admin/stock-sources/shutterstock/cost", json={"cost": -1}, headers=admin_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_hiding_a_site_removes_it_from_public_list(
    async_client: AsyncClient, session_factory: async_sessionmaker, admin_headers, auth_headers, make_source
) -> None:
    """Test toggling a site off hides it and is audited as a status change."""
    await make_source("shutterstock", "Shutterstock", 10)

    hidden = await async_client.patch(
        "/v1/admin/stock-sources/shutterstock/active", json={"active": False}, headers=admin_headers
    )
    not_boolean = await async_client.patch(
        "/v1/admin/stock-sources/shutterstock/active", json={"active": "no"}, headers=admin_headers
    )

    assert hidden.status_code == 200
    assert hidden.json()["active"] is False
    assert not_boolean.status_code == 422

    public = await async_client.get("/v1/stock/sources", headers=auth_headers)
    assert public.json() == {"sites": []}

    entries = await _audit(session_factory, "shutterstock")
    assert [(entry.action, entry.old_value, entry.new_value) for entry in entries] == [
        ("status_update", "true", "false")
    ]


@pytest.mark.asyncio
async def test_general_update_audits_each_changed_field(
    async_client: AsyncClient, session_factory: async_sessionmaker, admin_headers, make_source
) -> None:
    """Test a multi-field edit writes one row per real change and ignores nulls for required fields."""
    await make_source("shutterstock", "Shutterstock", 10)

    response = await async_client.patch(
        "/v1/admin/stock-sources/shutterstock",
        json={"name": "Shutterstock Images", "cost": 10, "active": None, "icon_url": "https://cdn.test/ss.svg"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Shutterstock Images"
    assert body["active"] is True
    assert body["icon_url"] == "https://cdn.test/ss.svg"

    entries = await _audit(session_factory, "shutterstock")
    assert [entry.action for entry in entries] == ["icon_url_update", "name_update"]


@pytest.mark.asyncio
async def test_update_unknown_or_empty(async_client: AsyncClient, admin_headers, make_source) -> None:
    """Test editing an unknown site is 404 and an empty edit is 400."""
    await make_source("shutterstock", "Shutterstock", 10)

    unknown = await async_client.patch(
        "/v1/admin/stock-sources/pond5/cost", json={"cost": 3}, headers=admin_headers
    )
    empty = await async_client.patch("/v1/admin/stock-sources/shutterstock", json={}, headers=admin_headers)

    assert unknown.status_code == 404
    assert unknown.json()["details"][0]["code"] == "stock_source_not_found"
    assert empty.status_code == 400


@pytest.mark.asyncio
async def test_audit_log_filters_and_limits(async_client: AsyncClient, admin_headers, make_source) -> None:
    """Test the audit trail can be narrowed to one site and capped."""
    await make_source("shutterstock", "Shutterstock", 10)
    await make_source("freepik", "Freepik", 4)

    for cost in (11, 12, 13):
        await async_client.patch(
            "/v1/admin/stock-sources/shutterstock/cost", json={"cost": cost}, headers=admin_headers
        )
    await async_client.patch("/v1/admin/stock-sources/freepik/cost", json={"cost": 5}, headers=admin_headers)

    everything = await async_client.get("/v1/admin/stock-sources/audit", headers=admin_headers)
    one_site = await async_client.get(
        "/v1/admin/stock-sources/audit", params={"key": "shutterstock", "limit": 2}, headers=admin_headers
    )

    assert len(everything.json()["logs"]) == 4
    logs = one_site.json()["logs"]
    assert len(logs) == 2
    assert {log["stock_source_key"] for log in logs} == {"shutterstock"}
    assert {log["new_value"] for log in logs} <= {"11.0", "12.0", "13.0"}
