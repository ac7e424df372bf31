# marketsync/services/price_store.py
"""
Append-only store of price observations with a materialized latest-price projection.

Observations are keyed by (sku, provider, size, currency, observed_at);
recording the same key twice is a successful no-op. The latest price of a
bucket is always the observation with the greatest observed_at; equal
timestamps resolve to the most recently written row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.utils import dialect_insert, normalize_size, to_naive_utc, utc_now
from marketsync.models.price import PriceObservation, MarketPriceLatest, SaleRecord

logger = logging.getLogger(__name__)


class RecordOutcome(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    EMPTY = "empty"


@dataclass(frozen=True)
class Observation:
    """One price snapshot ready to be recorded."""
    sku: str
    provider: str
    size: str
    currency: str
    observed_at: datetime
    lowest_ask: Optional[Decimal] = None
    highest_bid: Optional[Decimal] = None
    last_sale: Optional[Decimal] = None
    price: Optional[Decimal] = None

    @property
    def is_empty(self) -> bool:
        return self.lowest_ask is None and self.highest_bid is None and self.last_sale is None


@dataclass(frozen=True)
class LatestPrice:
    sku: str
    provider: str
    size: str
    currency: str
    observed_at: datetime
    lowest_ask: Optional[Decimal]
    highest_bid: Optional[Decimal]
    last_sale: Optional[Decimal]
    price: Optional[Decimal] = None


class PriceStore:
    """Price history persistence. Callers own the transaction (commit/rollback)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, observation: Observation) -> RecordOutcome:
        """Insert an observation; a duplicate key is reported, never raised."""
        if observation.is_empty:
            return RecordOutcome.EMPTY

        values = {
            "sku": observation.sku,
            "provider": observation.provider,
            "size": normalize_size(observation.size),
            "currency": observation.currency.upper(),
            "observed_at": to_naive_utc(observation.observed_at),
            "lowest_ask": observation.lowest_ask,
            "highest_bid": observation.highest_bid,
            "last_sale": observation.last_sale,
            "price": observation.price,
            "created_at": utc_now(),
        }

        stmt = dialect_insert(self.db, PriceObservation).values(**values)
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["sku", "provider", "size", "currency", "observed_at"]
        ).returning(PriceObservation.id)

        result = await self.db.execute(stmt)
        observation_id = result.scalar_one_or_none()
        if observation_id is None:
            logger.debug(f"Duplicate observation ignored: {values['sku']} {values['size']} {values['currency']} @ {values['observed_at']}")
            return RecordOutcome.DUPLICATE

        await self._project_latest(observation_id, values)
        return RecordOutcome.INSERTED

    async def _project_latest(self, observation_id: int, values: dict) -> None:
        """Move the projection forward only if this observation is at least as new."""
        row = {
            "sku": values["sku"],
            "provider": values["provider"],
            "size": values["size"],
            "currency": values["currency"],
            "observation_id": observation_id,
            "price": values["price"],
            "lowest_ask": values["lowest_ask"],
            "highest_bid": values["highest_bid"],
            "last_sale": values["last_sale"],
            "observed_at": values["observed_at"],
            "updated_at": utc_now(),
        }
        stmt = dialect_insert(self.db, MarketPriceLatest).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["sku", "provider", "size", "currency"],
            set_={
                "observation_id": stmt.excluded.observation_id,
                "price": stmt.excluded.price,
                "lowest_ask": stmt.excluded.lowest_ask,
                "highest_bid": stmt.excluded.highest_bid,
                "last_sale": stmt.excluded.last_sale,
                "observed_at": stmt.excluded.observed_at,
                "updated_at": stmt.excluded.updated_at,
            },
            where=MarketPriceLatest.observed_at <= stmt.excluded.observed_at,
        )
        await self.db.execute(stmt)

    async def latest(self, sku: str, provider: str, size: str, currency: str) -> Optional[LatestPrice]:
        """Latest observation for a bucket, or None. Never crosses currencies."""
        stmt = select(MarketPriceLatest).where(
            MarketPriceLatest.sku == sku,
            MarketPriceLatest.provider == provider,
            MarketPriceLatest.size == normalize_size(size),
            MarketPriceLatest.currency == currency.upper(),
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return LatestPrice(
            sku=row.sku,
            provider=row.provider,
            size=row.size,
            currency=row.currency,
            observed_at=row.observed_at,
            lowest_ask=row.lowest_ask,
            highest_bid=row.highest_bid,
            last_sale=row.last_sale,
            price=row.price,
        )

    async def latest_from_history(self, sku: str, provider: str, size: str, currency: str) -> Optional[PriceObservation]:
        """Same answer as latest(), computed from the raw rows still retained."""
        stmt = (
            select(PriceObservation)
            .where(
                PriceObservation.sku == sku,
                PriceObservation.provider == provider,
                PriceObservation.size == normalize_size(size),
                PriceObservation.currency == currency.upper(),
            )
            .order_by(PriceObservation.observed_at.desc(), PriceObservation.id.desc())
            .limit(1)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def record_sale(
        self,
        sku: str,
        provider: str,
        size: str,
        currency: str,
        price: Decimal,
        sold_at: datetime,
    ) -> RecordOutcome:
        """Insert one raw sale; duplicates are a no-op."""
        stmt = dialect_insert(self.db, SaleRecord).values(
            sku=sku,
            provider=provider,
            size=normalize_size(size),
            currency=currency.upper(),
            price=price,
            sold_at=to_naive_utc(sold_at),
            created_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["sku", "provider", "size", "currency", "sold_at", "price"]
        ).returning(SaleRecord.id)
        result = await self.db.execute(stmt)
        if result.scalar_one_or_none() is None:
            return RecordOutcome.DUPLICATE
        return RecordOutcome.INSERTED
