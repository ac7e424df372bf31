# marketsync/models/rollup.py
"""
Time-bucketed aggregates of raw price and sale history.

Rows are recomputed from their source on every rollup run (never
incremented), so re-running a rollup for the same period is a no-op.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, UniqueConstraint

from marketsync.database import Base
from marketsync.core.utils import utc_now


class PriceRollup(Base):
    __tablename__ = "price_rollups"

    id = Column(Integer, primary_key=True)

    granularity = Column(String(8), nullable=False)
    sku = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    size = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)
    bucket_start = Column(DateTime, nullable=False)

    sample_count = Column(Integer, nullable=False)

    avg_lowest_ask = Column(Numeric(12, 2), nullable=True)
    min_lowest_ask = Column(Numeric(12, 2), nullable=True)
    max_lowest_ask = Column(Numeric(12, 2), nullable=True)

    avg_highest_bid = Column(Numeric(12, 2), nullable=True)
    min_highest_bid = Column(Numeric(12, 2), nullable=True)
    max_highest_bid = Column(Numeric(12, 2), nullable=True)

    avg_last_sale = Column(Numeric(12, 2), nullable=True)
    min_last_sale = Column(Numeric(12, 2), nullable=True)
    max_last_sale = Column(Numeric(12, 2), nullable=True)

    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "granularity", "sku", "provider", "size", "currency", "bucket_start",
            name="uq_price_rollups_bucket",
        ),
    )


class SaleRollup(Base):
    __tablename__ = "sale_rollups"

    id = Column(Integer, primary_key=True)

    granularity = Column(String(8), nullable=False)
    sku = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    size = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)
    bucket_start = Column(DateTime, nullable=False)

    sale_count = Column(Integer, nullable=False)
    total_revenue = Column(Numeric(14, 2), nullable=False)
    avg_price = Column(Numeric(12, 2), nullable=True)
    min_price = Column(Numeric(12, 2), nullable=True)
    max_price = Column(Numeric(12, 2), nullable=True)

    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "granularity", "sku", "provider", "size", "currency", "bucket_start",
            name="uq_sale_rollups_bucket",
        ),
    )


class RollupState(Base):
    """
    Watermark per (series, granularity).

    rolled_through is the exclusive end of the last complete period that was
    aggregated; rolled_up_at is when that rollup started reading its source.
    Pruning consults both before deleting anything and records how far it went.
    """
    __tablename__ = "rollup_state"

    id = Column(Integer, primary_key=True)

    series = Column(String(16), nullable=False)
    granularity = Column(String(8), nullable=False)

    rolled_through = Column(DateTime, nullable=False)
    rolled_up_at = Column(DateTime, nullable=False)
    rows_written = Column(Integer, nullable=False, default=0)

    # Buckets starting before this were partially pruned and are never recomputed
    pruned_through = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("series", "granularity", name="uq_rollup_state_series_granularity"),
    )
