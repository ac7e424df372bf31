# tests/unit/services/test_valuation.py
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select

from marketsync.models.market_link import InventoryMarketLink
from marketsync.models.portfolio import PortfolioSnapshot
from marketsync.services.inventory_source import InventoryRecord
from marketsync.services.price_resolver import PriceResolver
from marketsync.services.price_store import Observation, PriceStore
from marketsync.services.valuation import PortfolioValuationService


def record(item_id, quantity=1, purchase_price=None, purchase_currency=None):
    return InventoryRecord(
        id=item_id,
        user_id="user-1",
        sku="DZ5485-612",
        size="UK10",
        quantity=quantity,
        purchase_price=Decimal(purchase_price) if purchase_price else None,
        purchase_currency=purchase_currency,
    )


@pytest_asyncio.fixture
async def priced_item(db_session):
    db_session.add(InventoryMarketLink(
        inventory_id="inv-priced",
        provider="stockx",
        provider_product_id="p",
        provider_variant_id="v",
        sku="DZ5485-612",
        size="UK10",
    ))
    await PriceStore(db_session).record(Observation(
        sku="DZ5485-612",
        provider="stockx",
        size="UK10",
        currency="GBP",
        observed_at=datetime(2026, 3, 1, 10),
        lowest_ask=Decimal("120"),
    ))
    await db_session.commit()


@pytest.mark.asyncio
async def test_value_splits_market_and_cost_basis(db_session, settings, priced_item):
    items = [
        record("inv-priced", quantity=2),
        record("inv-cost", quantity=3, purchase_price="50", purchase_currency="GBP"),
        record("inv-usd-cost", purchase_price="70", purchase_currency="USD"),
        record("inv-nothing"),
    ]

    valuation = await PortfolioValuationService(db_session, PriceResolver(db_session, settings=settings)).value("user-1", "gbp", items)

    assert valuation.currency == "GBP"
    assert valuation.market_value == Decimal("240")
    assert valuation.cost_basis_value == Decimal("150")
    assert valuation.total_value == Decimal("390")
    assert (valuation.items_priced, valuation.items_unpriced, valuation.items_unvalued) == (1, 3, 2)


@pytest.mark.asyncio
async def test_refresh_upserts_one_snapshot_per_day(db_session, settings, priced_item):
    service = PortfolioValuationService(db_session, PriceResolver(db_session, settings=settings))

    await service.refresh("user-1", "GBP", [record("inv-priced")])
    await db_session.commit()
    await service.refresh("user-1", "GBP", [record("inv-priced", quantity=4)])
    await db_session.commit()

    db_session.expire_all()
    snapshots = (await db_session.execute(select(PortfolioSnapshot))).scalars().all()
    assert len(snapshots) == 1
    assert snapshots[0].market_value == Decimal("480")
    assert snapshots[0].items_priced == 1
