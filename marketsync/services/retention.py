# marketsync/services/retention.py
"""
Retention Manager

Two operations, always run in this order:

1. rollup(granularity): aggregate history into DAY or MONTH buckets.
   DAY buckets are computed from raw price observations / sales of complete
   days, MONTH buckets from the DAY buckets of complete months. Every touched
   bucket is recomputed from its source and upserted, so running a rollup
   twice writes the same numbers.
2. prune(table, window): delete source rows older than the window, but only
   rows the last rollup has already read. A window that reaches past the
   rollup watermark is refused with RetentionOrderError.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Granularity, RetentionTable, RollupSeries
from marketsync.core.exceptions import RetentionError, RetentionOrderError
from marketsync.core.utils import dialect_insert, utc_now
from marketsync.models.price import PriceObservation, SaleRecord
from marketsync.models.rollup import PriceRollup, RollupState, SaleRollup

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PRICE_FIELDS = ("lowest_ask", "highest_bid", "last_sale")

BucketKey = Tuple[str, str, str, str]  # sku, provider, size, currency

# table -> (series, granularity) whose rollup must cover the rows before they go
PRUNE_GUARDS = {
    RetentionTable.PRICE_OBSERVATIONS: (RollupSeries.PRICES, Granularity.DAY),
    RetentionTable.SALE_RECORDS: (RollupSeries.SALES, Granularity.DAY),
    RetentionTable.PRICE_ROLLUPS_DAILY: (RollupSeries.PRICES, Granularity.MONTH),
}


def period_start(value: datetime, granularity: Granularity) -> datetime:
    if granularity is Granularity.DAY:
        return datetime(value.year, value.month, value.day)
    return datetime(value.year, value.month, 1)


def next_period(start: datetime, granularity: Granularity) -> datetime:
    if granularity is Granularity.DAY:
        return start + timedelta(days=1)
    if start.month == 12:
        return datetime(start.year + 1, 1, 1)
    return datetime(start.year, start.month + 1, 1)


def _quantize(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value).quantize(CENT)


@dataclass
class _Source:
    """Where a (series, granularity) rollup reads from."""
    model: type
    time_column: object
    stamp_column: object
    where: Optional[object] = None


def _source_for(series: RollupSeries, granularity: Granularity) -> _Source:
    if series is RollupSeries.PRICES:
        if granularity is Granularity.DAY:
            return _Source(PriceObservation, PriceObservation.observed_at, PriceObservation.created_at)
        return _Source(
            PriceRollup, PriceRollup.bucket_start, PriceRollup.updated_at,
            PriceRollup.granularity == Granularity.DAY.value,
        )
    if granularity is Granularity.DAY:
        return _Source(SaleRecord, SaleRecord.sold_at, SaleRecord.created_at)
    return _Source(
        SaleRollup, SaleRollup.bucket_start, SaleRollup.updated_at,
        SaleRollup.granularity == Granularity.DAY.value,
    )


class RetentionManager:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Rollup
    # ------------------------------------------------------------------

    async def rollup(self, granularity: Union[Granularity, str], now: Optional[datetime] = None) -> int:
        """
        Aggregate every complete period not yet rolled up (or touched since).

        Returns the number of bucket rows written across prices and sales.
        """
        if not isinstance(granularity, Granularity):
            granularity = Granularity(granularity.upper())
        now = now or utc_now()

        written = 0
        for series in RollupSeries:
            written += await self._rollup_series(series, granularity, now)

        logger.info(f"{granularity.value} rollup wrote {written} rows")
        return written

    async def _rollup_series(self, series: RollupSeries, granularity: Granularity, now: datetime) -> int:
        started_at = utc_now()
        period_end = period_start(now, granularity)
        state = await self._get_state(series, granularity)
        source = _source_for(series, granularity)

        try:
            buckets = await self._dirty_buckets(source, granularity, period_end, state)
            rows = 0
            for bucket_start in sorted(buckets):
                bucket_end = next_period(bucket_start, granularity)
                if series is RollupSeries.PRICES:
                    rows += await self._rollup_prices(granularity, bucket_start, bucket_end)
                else:
                    rows += await self._rollup_sales(granularity, bucket_start, bucket_end)

            await self._save_state(series, granularity, state, period_end, started_at, rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{series.value} {granularity.value} rollup failed: {e}", exc_info=True)
            raise RetentionError(f"{series.value} {granularity.value} rollup failed: {e}") from e

        logger.debug(f"{series.value} {granularity.value}: {len(buckets)} buckets, {rows} rows, through {period_end}")
        return rows

    async def _dirty_buckets(
        self,
        source: _Source,
        granularity: Granularity,
        period_end: datetime,
        state: Optional[RollupState],
    ) -> Set[datetime]:
        """Complete periods with source rows that are new since the last run."""
        stmt = select(source.time_column).where(source.time_column < period_end).distinct()
        if source.where is not None:
            stmt = stmt.where(source.where)
        if state is not None:
            stmt = stmt.where(
                or_(
                    source.stamp_column > state.rolled_up_at,
                    source.time_column >= state.rolled_through,
                )
            )
            if state.pruned_through is not None:
                stmt = stmt.where(source.time_column >= state.pruned_through)

        buckets = set()
        for (value,) in (await self.db.execute(stmt)).all():
            start = period_start(value, granularity)
            if state is not None and state.pruned_through is not None and start < state.pruned_through:
                continue
            buckets.add(start)
        return buckets

    async def _rollup_prices(self, granularity: Granularity, start: datetime, end: datetime) -> int:
        if granularity is Granularity.DAY:
            rows = (
                await self.db.execute(
                    select(PriceObservation).where(
                        PriceObservation.observed_at >= start,
                        PriceObservation.observed_at < end,
                    )
                )
            ).scalars().all()
            aggregates = self._aggregate_observations(rows)
        else:
            rows = (
                await self.db.execute(
                    select(PriceRollup).where(
                        PriceRollup.granularity == Granularity.DAY.value,
                        PriceRollup.bucket_start >= start,
                        PriceRollup.bucket_start < end,
                    )
                )
            ).scalars().all()
            aggregates = self._aggregate_daily_prices(rows)

        for key, values in aggregates.items():
            await self._upsert_rollup(PriceRollup, granularity, start, key, values)
        return len(aggregates)

    async def _rollup_sales(self, granularity: Granularity, start: datetime, end: datetime) -> int:
        if granularity is Granularity.DAY:
            rows = (
                await self.db.execute(
                    select(SaleRecord).where(SaleRecord.sold_at >= start, SaleRecord.sold_at < end)
                )
            ).scalars().all()
            aggregates = self._aggregate_sales(rows)
        else:
            rows = (
                await self.db.execute(
                    select(SaleRollup).where(
                        SaleRollup.granularity == Granularity.DAY.value,
                        SaleRollup.bucket_start >= start,
                        SaleRollup.bucket_start < end,
                    )
                )
            ).scalars().all()
            aggregates = self._aggregate_daily_sales(rows)

        for key, values in aggregates.items():
            await self._upsert_rollup(SaleRollup, granularity, start, key, values)
        return len(aggregates)

    @staticmethod
    def _group(rows: Iterable) -> Dict[BucketKey, List]:
        groups = defaultdict(list)
        for row in rows:
            groups[(row.sku, row.provider, row.size, row.currency)].append(row)
        return groups

    def _aggregate_observations(self, rows: Iterable[PriceObservation]) -> Dict[BucketKey, dict]:
        result = {}
        for key, group in self._group(rows).items():
            values = {"sample_count": len(group)}
            for name in PRICE_FIELDS:
                present = [getattr(r, name) for r in group if getattr(r, name) is not None]
                values[f"avg_{name}"] = _quantize(sum(present) / len(present)) if present else None
                values[f"min_{name}"] = min(present) if present else None
                values[f"max_{name}"] = max(present) if present else None
            result[key] = values
        return result

    def _aggregate_daily_prices(self, rows: Iterable[PriceRollup]) -> Dict[BucketKey, dict]:
        """Sample-weighted average of the daily averages; min of mins, max of maxes."""
        result = {}
        for key, group in self._group(rows).items():
            values = {"sample_count": sum(r.sample_count for r in group)}
            for name in PRICE_FIELDS:
                weighted = [(getattr(r, f"avg_{name}"), r.sample_count) for r in group if getattr(r, f"avg_{name}") is not None]
                weight = sum(count for _, count in weighted)
                mins = [getattr(r, f"min_{name}") for r in group if getattr(r, f"min_{name}") is not None]
                maxes = [getattr(r, f"max_{name}") for r in group if getattr(r, f"max_{name}") is not None]
                values[f"avg_{name}"] = _quantize(sum(avg * count for avg, count in weighted) / weight) if weight else None
                values[f"min_{name}"] = min(mins) if mins else None
                values[f"max_{name}"] = max(maxes) if maxes else None
            result[key] = values
        return result

    def _aggregate_sales(self, rows: Iterable[SaleRecord]) -> Dict[BucketKey, dict]:
        result = {}
        for key, group in self._group(rows).items():
            prices = [r.price for r in group]
            total = sum(prices)
            result[key] = {
                "sale_count": len(prices),
                "total_revenue": _quantize(total),
                "avg_price": _quantize(total / len(prices)),
                "min_price": min(prices),
                "max_price": max(prices),
            }
        return result

    def _aggregate_daily_sales(self, rows: Iterable[SaleRollup]) -> Dict[BucketKey, dict]:
        result = {}
        for key, group in self._group(rows).items():
            count = sum(r.sale_count for r in group)
            total = sum(r.total_revenue for r in group)
            mins = [r.min_price for r in group if r.min_price is not None]
            maxes = [r.max_price for r in group if r.max_price is not None]
            result[key] = {
                "sale_count": count,
                "total_revenue": _quantize(total),
                "avg_price": _quantize(total / count) if count else None,
                "min_price": min(mins) if mins else None,
                "max_price": max(maxes) if maxes else None,
            }
        return result

    async def _upsert_rollup(self, model, granularity: Granularity, bucket_start: datetime, key: BucketKey, values: dict) -> None:
        sku, provider, size, currency = key
        row = {
            "granularity": granularity.value,
            "sku": sku,
            "provider": provider,
            "size": size,
            "currency": currency,
            "bucket_start": bucket_start,
            "updated_at": utc_now(),
            **values,
        }
        stmt = dialect_insert(self.db, model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["granularity", "sku", "provider", "size", "currency", "bucket_start"],
            set_={name: getattr(stmt.excluded, name) for name in list(values) + ["updated_at"]},
        )
        await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Prune
    # ------------------------------------------------------------------

    async def prune(
        self,
        table: Union[RetentionTable, str],
        retention_window: timedelta,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete rows of ``table`` older than ``retention_window``.

        Only whole days are pruned, and only rows the covering rollup read
        (created or updated before it started). Rows that arrived later are
        kept until a later rollup has aggregated them.

        Raises:
            RetentionOrderError: the covering rollup has not reached the cutoff yet
        """
        table = RetentionTable(table)
        now = now or utc_now()
        cutoff = period_start(now - retention_window, Granularity.DAY)
        series, granularity = PRUNE_GUARDS[table]

        state = await self._get_state(series, granularity)
        if state is None:
            raise RetentionOrderError(
                f"Cannot prune {table.value}: no {series.value} {granularity.value} rollup has run"
            )
        if state.rolled_through < cutoff:
            raise RetentionOrderError(
                f"Cannot prune {table.value} before {cutoff}: {series.value} {granularity.value} "
                f"rollup only covers up to {state.rolled_through}"
            )

        if table is RetentionTable.PRICE_OBSERVATIONS:
            stmt = delete(PriceObservation).where(
                PriceObservation.observed_at < cutoff,
                PriceObservation.created_at <= state.rolled_up_at,
            )
        elif table is RetentionTable.SALE_RECORDS:
            stmt = delete(SaleRecord).where(
                SaleRecord.sold_at < cutoff,
                SaleRecord.created_at <= state.rolled_up_at,
            )
        else:
            stmt = delete(PriceRollup).where(
                PriceRollup.granularity == Granularity.DAY.value,
                PriceRollup.bucket_start < cutoff,
                PriceRollup.updated_at <= state.rolled_up_at,
            )

        try:
            result = await self.db.execute(stmt)
            deleted = result.rowcount or 0
            pruned_through = max(cutoff, state.pruned_through) if state.pruned_through else cutoff
            await self.db.execute(
                update(RollupState).where(RollupState.id == state.id).values(pruned_through=pruned_through)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Pruning {table.value} failed: {e}", exc_info=True)
            raise RetentionError(f"Pruning {table.value} failed: {e}") from e

        logger.info(f"Pruned {deleted} rows from {table.value} older than {cutoff}")
        return deleted

    # ------------------------------------------------------------------
    # Watermarks
    # ------------------------------------------------------------------

    async def _get_state(self, series: RollupSeries, granularity: Granularity) -> Optional[RollupState]:
        return (
            await self.db.execute(
                select(RollupState)
                .where(RollupState.series == series.value, RollupState.granularity == granularity.value)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

    async def _save_state(
        self,
        series: RollupSeries,
        granularity: Granularity,
        state: Optional[RollupState],
        period_end: datetime,
        started_at: datetime,
        rows: int,
    ) -> None:
        rolled_through = max(period_end, state.rolled_through) if state is not None else period_end
        stmt = dialect_insert(self.db, RollupState).values(
            series=series.value,
            granularity=granularity.value,
            rolled_through=rolled_through,
            rolled_up_at=started_at,
            rows_written=rows,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["series", "granularity"],
            set_={
                "rolled_through": stmt.excluded.rolled_through,
                "rolled_up_at": stmt.excluded.rolled_up_at,
                "rows_written": stmt.excluded.rows_written,
            },
        )
        await self.db.execute(stmt)
