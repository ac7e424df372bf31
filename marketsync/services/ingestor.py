# marketsync/services/ingestor.py
"""
Catalog & price ingestion.

For each SKU in a batch:
1. Look the product up on the marketplace (absent -> skipped, not an error)
2. Upsert the CatalogProduct and its size variants
3. Quote every variant in every configured currency and record the
   observation (quotes with no ask, bid or last sale are skipped)

Calls are paced with a short delay between variant calls and a longer one
between products. A failure on one SKU or one variant is recorded and the
batch continues; only credential failures abort it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import MarketplaceAPIError, MarketplaceAuthError
from marketsync.core.utils import (
    dialect_insert,
    floor_to_bucket,
    normalize_size,
    normalize_sku,
    utc_now,
)
from marketsync.models.catalog import CatalogProduct, CatalogVariant
from marketsync.schemas.marketplace import MarketProduct, MarketVariant
from marketsync.services.marketplace.base import MarketplaceClient
from marketsync.services.price_store import Observation, PriceStore, RecordOutcome

logger = logging.getLogger(__name__)

PER_ITEM_ERRORS = (MarketplaceAPIError, asyncio.TimeoutError)


@dataclass
class IngestIssue:
    sku: str
    reason: str
    variant_id: Optional[str] = None
    currency: Optional[str] = None


@dataclass
class IngestResult:
    """Counts for one ingest() call."""
    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0
    variants: int = 0
    sales_inserted: int = 0
    skips: List[IngestIssue] = field(default_factory=list)
    errors: List[IngestIssue] = field(default_factory=list)
    processed_skus: Set[str] = field(default_factory=set)

    @property
    def skipped(self) -> int:
        return len(self.skips)

    def skip(self, sku: str, reason: str, variant_id: str = None, currency: str = None) -> None:
        self.skips.append(IngestIssue(sku, reason, variant_id, currency))

    def error(self, sku: str, reason: str, variant_id: str = None, currency: str = None) -> None:
        self.errors.append(IngestIssue(sku, reason, variant_id, currency))

    def as_counts(self) -> dict:
        return {
            "fetched": self.fetched,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "variants": self.variants,
            "sales_inserted": self.sales_inserted,
            "skipped": self.skipped,
            "errors": len(self.errors),
        }


class CatalogIngestor:
    def __init__(
        self,
        db: AsyncSession,
        client: MarketplaceClient,
        price_store: Optional[PriceStore] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.client = client
        self.provider = client.provider
        self.price_store = price_store or PriceStore(db)
        self.settings = settings or get_settings()
        self._sleep = sleep

    async def ingest(
        self,
        skus: Iterable[str],
        currencies: Optional[List[str]] = None,
        observed_at: Optional[datetime] = None,
    ) -> IngestResult:
        """
        Ingest catalog and prices for a set of SKUs.

        Args:
            skus: style codes; duplicates after normalization are processed once
            currencies: currencies to quote (defaults to MARKET_CURRENCIES)
            observed_at: timestamp for quotes that carry none; defaults to the
                current snapshot bucket so re-running inside one bucket is idempotent

        Raises:
            MarketplaceAuthError: credentials rejected; the batch stops
        """
        result = IngestResult()
        currencies = [c.upper() for c in (currencies or self.settings.market_currencies)]
        snapshot_at = observed_at or floor_to_bucket(utc_now(), self.settings.PRICE_SNAPSHOT_BUCKET_SECONDS)

        products_attempted = 0
        for sku in skus:
            key = normalize_sku(sku)
            if not key or key in result.processed_skus:
                continue
            result.processed_skus.add(key)

            if products_attempted:
                await self._sleep(self.settings.INGEST_PRODUCT_DELAY_SECONDS)
            products_attempted += 1

            try:
                await self._ingest_sku(sku, currencies, snapshot_at, result)
                await self.db.commit()
            except MarketplaceAuthError:
                await self.db.rollback()
                raise
            except PER_ITEM_ERRORS as e:
                await self.db.rollback()
                logger.warning(f"Ingest failed for {sku}: {e}")
                result.error(sku, str(e) or e.__class__.__name__)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Database error while ingesting {sku}: {e}", exc_info=True)
                result.error(sku, f"database error: {e}")

        logger.info(
            f"Ingest complete for {self.provider}: fetched={result.fetched} inserted={result.inserted} "
            f"duplicates={result.duplicates} skipped={result.skipped} errors={len(result.errors)}"
        )
        return result

    async def _ingest_sku(self, sku: str, currencies: List[str], snapshot_at: datetime, result: IngestResult) -> None:
        product = await self.client.search_product(sku)
        if product is None:
            logger.info(f"{sku} not found on {self.provider}, skipping")
            result.skip(sku, "not_found")
            return

        result.fetched += 1
        await self._upsert_product(product)

        variants = await self.client.get_variants(product.product_id)
        if not variants:
            result.skip(sku, "no_variants")
            return

        calls = 0
        for variant in variants:
            if not variant.size:
                result.skip(sku, "no_size", variant.variant_id)
                continue

            await self._upsert_variant(variant)
            result.variants += 1

            for currency in currencies:
                if calls:
                    await self._sleep(self.settings.INGEST_VARIANT_DELAY_SECONDS)
                calls += 1
                await self._ingest_quote(product, variant, currency, snapshot_at, result)

            if self.settings.INGEST_SALES_HISTORY:
                for currency in currencies:
                    await self._sleep(self.settings.INGEST_VARIANT_DELAY_SECONDS)
                    await self._ingest_sales(product, variant, currency, result)

    async def _ingest_quote(
        self,
        product: MarketProduct,
        variant: MarketVariant,
        currency: str,
        snapshot_at: datetime,
        result: IngestResult,
    ) -> None:
        try:
            quote = await self.client.get_price(product.product_id, variant.variant_id, currency)
        except MarketplaceAuthError:
            raise
        except PER_ITEM_ERRORS as e:
            logger.warning(f"Price fetch failed for {product.sku} size {variant.size} ({currency}): {e}")
            result.error(product.sku, str(e) or e.__class__.__name__, variant.variant_id, currency)
            return

        if quote is None or not quote.has_market_data:
            result.skip(product.sku, "no_market_data", variant.variant_id, currency)
            return

        outcome = await self.price_store.record(
            Observation(
                sku=product.sku,
                provider=self.provider,
                size=variant.size,
                currency=quote.currency,
                observed_at=quote.observed_at or snapshot_at,
                lowest_ask=quote.lowest_ask,
                highest_bid=quote.highest_bid,
                last_sale=quote.last_sale,
                price=quote.price,
            )
        )
        if outcome is RecordOutcome.INSERTED:
            result.inserted += 1
        elif outcome is RecordOutcome.DUPLICATE:
            result.duplicates += 1

    async def _ingest_sales(self, product: MarketProduct, variant: MarketVariant, currency: str, result: IngestResult) -> None:
        try:
            sales = await self.client.get_sales(product.product_id, variant.variant_id, currency)
        except MarketplaceAuthError:
            raise
        except PER_ITEM_ERRORS as e:
            logger.warning(f"Sales fetch failed for {product.sku} size {variant.size} ({currency}): {e}")
            result.error(product.sku, str(e) or e.__class__.__name__, variant.variant_id, currency)
            return

        for sale in sales:
            outcome = await self.price_store.record_sale(
                sku=product.sku,
                provider=self.provider,
                size=variant.size,
                currency=sale.currency,
                price=sale.price,
                sold_at=sale.sold_at,
            )
            if outcome is RecordOutcome.INSERTED:
                result.sales_inserted += 1

    async def _upsert_product(self, product: MarketProduct) -> None:
        values = {
            "provider": self.provider,
            "provider_product_id": product.product_id,
            "sku": product.sku,
            "sku_normalized": normalize_sku(product.sku),
            "brand": product.brand,
            "model": product.model,
            "colorway": product.colorway,
            "image_url": product.image_url,
            "category": product.category,
            "updated_at": utc_now(),
        }
        stmt = dialect_insert(self.db, CatalogProduct).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["sku", "provider"],
            set_={k: getattr(stmt.excluded, k) for k in values if k not in ("sku", "provider")},
        )
        await self.db.execute(stmt)

    async def _upsert_variant(self, variant: MarketVariant) -> None:
        values = {
            "provider": self.provider,
            "provider_product_id": variant.product_id,
            "provider_variant_id": variant.variant_id,
            "size": variant.size,
            "size_normalized": normalize_size(variant.size),
            "updated_at": utc_now(),
        }
        stmt = dialect_insert(self.db, CatalogVariant).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider", "provider_variant_id"],
            set_={k: getattr(stmt.excluded, k) for k in ("provider_product_id", "size", "size_normalized", "updated_at")},
        )
        await self.db.execute(stmt)
