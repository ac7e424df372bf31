# tests/unit/services/test_ingestor.py
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, call

import pytest
from sqlalchemy import func, select

from marketsync.core.exceptions import MarketplaceAuthError
from marketsync.core.utils import normalize_sku
from marketsync.models.catalog import CatalogProduct, CatalogVariant
from marketsync.models.price import PriceObservation, SaleRecord
from marketsync.schemas.marketplace import SaleQuote
from marketsync.services.ingestor import CatalogIngestor

SNAPSHOT = datetime(2026, 3, 1, 10, 0)


async def count(db_session, model):
    return (await db_session.execute(select(func.count()).select_from(model))).scalar_one()


def ingestor_for(db_session, client, settings, sleep=None):
    return CatalogIngestor(db_session, client, settings=settings, sleep=sleep or AsyncMock())


@pytest.mark.asyncio
async def test_ingest_writes_catalog_variants_and_prices(db_session, mock_client, settings):
    mock_client.add_product("DZ5485-612", {
        "UK10": {"last_sale": "150", "lowest_ask": "162"},
        "UK11": {"highest_bid": "140"},
    })

    result = await ingestor_for(db_session, mock_client, settings).ingest(["DZ5485-612"], observed_at=SNAPSHOT)

    assert result.fetched == 1
    assert result.variants == 2
    assert result.inserted == 2
    assert result.errors == []

    product = (await db_session.execute(select(CatalogProduct))).scalar_one()
    assert product.sku == "DZ5485-612"
    assert product.sku_normalized == "dz5485612"
    assert await count(db_session, CatalogVariant) == 2

    rows = (await db_session.execute(select(PriceObservation).order_by(PriceObservation.size))).scalars().all()
    assert [(r.size, r.currency, r.last_sale, r.highest_bid) for r in rows] == [
        ("UK10", "GBP", Decimal("150"), None),
        ("UK11", "GBP", None, Decimal("140")),
    ]


@pytest.mark.asyncio
async def test_ingest_twice_is_idempotent(db_session, mock_client, settings):
    mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    ingestor = ingestor_for(db_session, mock_client, settings)

    first = await ingestor.ingest(["DZ5485-612"], observed_at=SNAPSHOT)
    rows_after_first = await count(db_session, PriceObservation)
    second = await ingestor.ingest(["DZ5485-612"], observed_at=SNAPSHOT)

    assert first.inserted == 1
    assert second.inserted == 0
    assert second.duplicates == 1
    assert await count(db_session, PriceObservation) == rows_after_first == 1
    assert await count(db_session, CatalogProduct) == 1


@pytest.mark.asyncio
async def test_snapshot_bucket_makes_reruns_idempotent_without_timestamp(db_session, mock_client, settings, mocker):
    mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    fake_now = mocker.patch("marketsync.services.ingestor.utc_now", return_value=datetime(2026, 3, 1, 10, 5))
    ingestor = ingestor_for(db_session, mock_client, settings)

    await ingestor.ingest(["DZ5485-612"])
    fake_now.return_value = datetime(2026, 3, 1, 10, 55)
    second = await ingestor.ingest(["DZ5485-612"])

    assert second.duplicates == 1
    row = (await db_session.execute(select(PriceObservation))).scalar_one()
    assert row.observed_at == datetime(2026, 3, 1, 10, 0)


@pytest.mark.asyncio
async def test_one_failing_sku_in_ten_is_recorded_and_batch_continues(db_session, mock_client, settings):
    skus = [f"SKU-{i:03d}" for i in range(10)]
    for sku in skus:
        mock_client.add_product(sku, {"UK10": {"last_sale": "100"}})
    mock_client.fail_skus.add(normalize_sku("SKU-004"))

    result = await ingestor_for(db_session, mock_client, settings).ingest(skus, observed_at=SNAPSHOT)

    assert result.inserted == 9
    assert len(result.errors) == 1
    assert result.errors[0].sku == "SKU-004"
    assert await count(db_session, PriceObservation) == 9


@pytest.mark.asyncio
async def test_absent_sku_and_missing_market_data_are_skips(db_session, mock_client, settings):
    mock_client.add_product("DZ5485-612", {"UK10": {}, "UK11": {"lowest_ask": "170"}})

    result = await ingestor_for(db_session, mock_client, settings).ingest(
        ["DZ5485-612", "UNKNOWN-1"], observed_at=SNAPSHOT
    )

    assert result.errors == []
    assert result.inserted == 1
    assert sorted(issue.reason for issue in result.skips) == ["no_market_data", "not_found"]


@pytest.mark.asyncio
async def test_failed_price_call_is_a_per_item_error(db_session, mock_client, settings):
    product = mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}, "UK11": {"last_sale": "155"}})
    mock_client.fail_variants.add(f"{product.product_id}-UK10")

    result = await ingestor_for(db_session, mock_client, settings).ingest(["DZ5485-612"], observed_at=SNAPSHOT)

    assert result.inserted == 1
    assert len(result.errors) == 1
    assert result.errors[0].variant_id == f"{product.product_id}-UK10"


@pytest.mark.asyncio
async def test_auth_failure_aborts_the_batch(db_session, mock_client, settings):
    mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    mock_client.auth_fails = True

    with pytest.raises(MarketplaceAuthError):
        await ingestor_for(db_session, mock_client, settings).ingest(["DZ5485-612"], observed_at=SNAPSHOT)


@pytest.mark.asyncio
async def test_duplicate_skus_are_processed_once(db_session, mock_client, settings):
    mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})

    await ingestor_for(db_session, mock_client, settings).ingest(
        ["DZ5485-612", "dz5485 612", "DZ5485612"], observed_at=SNAPSHOT
    )

    assert len(mock_client.calls_to("search_product")) == 1


@pytest.mark.asyncio
async def test_calls_are_paced(db_session, mock_client, settings):
    settings = settings.model_copy(update={
        "INGEST_VARIANT_DELAY_SECONDS": 0.05,
        "INGEST_PRODUCT_DELAY_SECONDS": 0.3,
    })
    mock_client.add_product("AAA-1", {"UK9": {"last_sale": "1"}, "UK10": {"last_sale": "2"}})
    mock_client.add_product("BBB-2", {"UK9": {"last_sale": "3"}, "UK10": {"last_sale": "4"}})
    sleep = AsyncMock()

    await ingestor_for(db_session, mock_client, settings, sleep=sleep).ingest(["AAA-1", "BBB-2"], observed_at=SNAPSHOT)

    assert sleep.await_args_list == [call(0.05), call(0.3), call(0.05)]


@pytest.mark.asyncio
async def test_each_currency_is_stored_separately(db_session, mock_client, settings):
    settings = settings.model_copy(update={"MARKET_CURRENCIES": "GBP,USD"})
    product = mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    mock_client.set_price(product.product_id, f"{product.product_id}-UK10", "USD", last_sale="190")

    result = await ingestor_for(db_session, mock_client, settings).ingest(["DZ5485-612"], observed_at=SNAPSHOT)

    assert result.inserted == 2
    currencies = (await db_session.execute(select(PriceObservation.currency).order_by(PriceObservation.currency))).scalars().all()
    assert currencies == ["GBP", "USD"]


@pytest.mark.asyncio
async def test_sales_history_is_recorded_once_when_enabled(db_session, mock_client, settings):
    settings = settings.model_copy(update={"INGEST_SALES_HISTORY": True})
    product = mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    key = (product.product_id, f"{product.product_id}-UK10", "GBP")
    mock_client.sales[key] = [
        SaleQuote(currency="GBP", price=Decimal("150"), sold_at=datetime(2026, 2, 28, 18)),
        SaleQuote(currency="GBP", price=Decimal("155"), sold_at=datetime(2026, 2, 28, 20)),
    ]
    ingestor = ingestor_for(db_session, mock_client, settings)

    first = await ingestor.ingest(["DZ5485-612"], observed_at=SNAPSHOT)
    second = await ingestor.ingest(["DZ5485-612"], observed_at=SNAPSHOT)

    assert first.sales_inserted == 2
    assert second.sales_inserted == 0
    assert await count(db_session, SaleRecord) == 2
