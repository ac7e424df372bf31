# tests/unit/services/test_linker.py
import pytest
from sqlalchemy import select, update

from marketsync.core.enums import UnmatchedReason
from marketsync.core.utils import normalize_size, normalize_sku
from marketsync.models.catalog import CatalogProduct, CatalogVariant
from marketsync.models.market_link import InventoryMarketLink, UnmatchedInventory
from marketsync.services.inventory_source import InventoryRecord
from marketsync.services.linker import InventoryLinker, Linked, NoMatch


async def seed_catalog(db_session, sku="DZ5485-612", product_id="p-612", sizes=("UK10", "UK11"), provider="stockx"):
    db_session.add(CatalogProduct(
        provider=provider,
        provider_product_id=product_id,
        sku=sku,
        sku_normalized=normalize_sku(sku),
    ))
    for size in sizes:
        db_session.add(CatalogVariant(
            provider=provider,
            provider_product_id=product_id,
            provider_variant_id=f"{product_id}-{size}",
            size=size,
            size_normalized=normalize_size(size),
        ))
    await db_session.commit()


@pytest.mark.asyncio
@pytest.mark.parametrize("inventory_sku", ["DZ5485-612", "dz5485612", "dz5485 612"])
async def test_sku_matches_after_normalization(db_session, make_item, inventory_sku):
    await seed_catalog(db_session)
    await make_item("inv-1", inventory_sku, size="UK10")

    result = await InventoryLinker(db_session).link("inv-1", inventory_sku, "UK10", "stockx")
    await db_session.commit()

    assert isinstance(result, Linked)
    assert result.created is True
    assert result.provider_variant_id == "p-612-UK10"

    link = (await db_session.execute(select(InventoryMarketLink))).scalar_one()
    assert (link.inventory_id, link.sku, link.size) == ("inv-1", "DZ5485-612", "UK10")


@pytest.mark.asyncio
async def test_unknown_sku_is_no_match_not_error(db_session):
    result = await InventoryLinker(db_session).link("inv-1", "ZZ0000-000", "UK10", "stockx")

    assert isinstance(result, NoMatch)
    assert result.reason is UnmatchedReason.CATALOG_NOT_FOUND


@pytest.mark.asyncio
async def test_missing_size_is_no_match(db_session):
    await seed_catalog(db_session, sizes=("UK9",))

    result = await InventoryLinker(db_session).link("inv-1", "DZ5485-612", "UK10", "stockx")

    assert isinstance(result, NoMatch)
    assert result.reason is UnmatchedReason.SIZE_NOT_FOUND


@pytest.mark.asyncio
async def test_link_items_records_and_clears_unmatched(db_session, make_item):
    await make_item("inv-1", "DZ5485-612", size="UK10")
    record = InventoryRecord(id="inv-1", user_id="user-1", sku="DZ5485-612", size="UK10", quantity=1)
    linker = InventoryLinker(db_session)

    first = await linker.link_items([record], "stockx")
    second = await linker.link_items([record], "stockx")

    assert first.unmatched == second.unmatched == 1
    db_session.expire_all()
    unmatched = (await db_session.execute(select(UnmatchedInventory))).scalar_one()
    assert unmatched.reason == UnmatchedReason.CATALOG_NOT_FOUND.value
    assert unmatched.attempts == 2

    await seed_catalog(db_session)
    third = await linker.link_items([record], "stockx")

    assert third.linked == 1
    assert third.created == 1
    assert (await db_session.execute(select(UnmatchedInventory))).scalars().all() == []


@pytest.mark.asyncio
async def test_relink_keeps_listing_back_reference(db_session, make_item):
    await seed_catalog(db_session)
    await make_item("inv-1", "DZ5485-612", size="UK10")
    linker = InventoryLinker(db_session)

    await linker.link("inv-1", "DZ5485-612", "UK10", "stockx")
    await db_session.execute(update(InventoryMarketLink).values(listing_id="L-1"))
    await db_session.commit()

    # Inventory size corrected; the link moves to the other variant
    result = await linker.link("inv-1", "DZ5485-612", "UK11", "stockx")
    await db_session.commit()

    assert result.changed is True
    assert result.created is False
    db_session.expire_all()
    link = (await db_session.execute(select(InventoryMarketLink))).scalar_one()
    assert link.provider_variant_id == "p-612-UK11"
    assert link.listing_id == "L-1"


@pytest.mark.asyncio
async def test_failed_rematch_keeps_existing_link(db_session, make_item):
    await seed_catalog(db_session)
    await make_item("inv-1", "DZ5485-612", size="UK10")
    linker = InventoryLinker(db_session)
    await linker.link("inv-1", "DZ5485-612", "UK10", "stockx")
    await db_session.commit()

    summary = await linker.link_items(
        [InventoryRecord(id="inv-1", user_id="user-1", sku="DZ5485-612", size="UK14", quantity=1)], "stockx"
    )

    assert summary.unmatched == 1
    link = (await db_session.execute(select(InventoryMarketLink))).scalar_one()
    assert link.provider_variant_id == "p-612-UK10"
