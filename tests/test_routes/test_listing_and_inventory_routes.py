# tests/test_routes/test_listing_and_inventory_routes.py
from datetime import datetime
from decimal import Decimal

import pytest

from marketsync.models.listing import TrackedListing
from marketsync.models.market_link import InventoryMarketLink
from marketsync.services.price_store import Observation, PriceStore


@pytest.mark.asyncio
async def test_reconcile_route_returns_summary(api_client, db_session, mock_client):
    db_session.add(TrackedListing(listing_id="L-1", provider="stockx", user_id="user-1", status="ACTIVE"))
    await db_session.commit()
    mock_client.add_listing("user-1", "L-9")

    response = await api_client.post("/api/listings/user-1/reconcile")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["summary"]["deleted"] == 1
    assert body["orphaned_ids"] == ["L-9"]


@pytest.mark.asyncio
async def test_reconcile_route_fetch_failure(api_client, mock_client):
    mock_client.listings_fail = True

    body = (await api_client.post("/api/listings/user-1/reconcile")).json()

    assert body["status"] == "error"
    assert body["summary"]["errors"] == 1


@pytest.mark.asyncio
async def test_reconcile_route_auth_failure_is_502(api_client, mock_client):
    mock_client.auth_fails = True

    response = await api_client.post("/api/listings/user-1/reconcile")

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_market_value_route(api_client, db_session, make_item):
    await make_item("inv-1", "DZ5485-612", quantity=2)
    db_session.add(InventoryMarketLink(
        inventory_id="inv-1", provider="stockx", provider_product_id="p", provider_variant_id="v",
        sku="DZ5485-612", size="UK10",
    ))
    await PriceStore(db_session).record(Observation(
        sku="DZ5485-612", provider="stockx", size="UK10", currency="GBP",
        observed_at=datetime(2026, 3, 1, 10), last_sale=Decimal("150"),
    ))
    await db_session.commit()

    body = (await api_client.get("/api/inventory/inv-1/market-value")).json()

    assert body["source"] == "MARKETPLACE"
    assert Decimal(body["value"]) == Decimal("300")
    assert Decimal(body["unit_value"]) == Decimal("150")
    assert body["field"] == "last_sale"
    assert body["as_of"] == "2026-03-01T10:00:00"


@pytest.mark.asyncio
async def test_market_value_without_price_is_none(api_client, make_item):
    await make_item("inv-1", "DZ5485-612")

    body = (await api_client.get("/api/inventory/inv-1/market-value", params={"currency": "usd"})).json()

    assert body["source"] == "NONE"
    assert body["value"] is None
    assert body["currency"] == "USD"


@pytest.mark.asyncio
async def test_market_value_unknown_item_is_404(api_client):
    assert (await api_client.get("/api/inventory/nope/market-value")).status_code == 404


@pytest.mark.asyncio
async def test_health(api_client):
    assert (await api_client.get("/health")).json()["status"] == "healthy"
    assert (await api_client.get("/health/db")).json()["database"] == "connected"
