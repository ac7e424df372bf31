# marketsync/models/price.py
"""
Price history tables.

PriceObservation is append-only: rows are never updated, only superseded by
newer rows and eventually removed by retention pruning. MarketPriceLatest is
the materialized "latest" projection, one row per (sku, provider, size, currency).
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, UniqueConstraint, Index

from marketsync.database import Base
from marketsync.core.utils import utc_now


class PriceObservation(Base):
    __tablename__ = "price_observations"

    id = Column(Integer, primary_key=True)

    sku = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    size = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)

    price = Column(Numeric(12, 2), nullable=True)
    lowest_ask = Column(Numeric(12, 2), nullable=True)
    highest_bid = Column(Numeric(12, 2), nullable=True)
    last_sale = Column(Numeric(12, 2), nullable=True)

    observed_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            "sku", "provider", "size", "currency", "observed_at",
            name="uq_price_observations_bucket_observed_at",
        ),
        Index("ix_price_observations_observed_at", "observed_at"),
    )

    def __repr__(self):
        return (f"<PriceObservation(sku='{self.sku}', provider='{self.provider}', size='{self.size}', "
                f"currency='{self.currency}', observed_at={self.observed_at})>")


class MarketPriceLatest(Base):
    __tablename__ = "market_price_latest"

    id = Column(Integer, primary_key=True)

    sku = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    size = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)

    observation_id = Column(Integer, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    lowest_ask = Column(Numeric(12, 2), nullable=True)
    highest_bid = Column(Numeric(12, 2), nullable=True)
    last_sale = Column(Numeric(12, 2), nullable=True)

    observed_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("sku", "provider", "size", "currency", name="uq_market_price_latest_bucket"),
    )


class SaleRecord(Base):
    __tablename__ = "sale_records"

    id = Column(Integer, primary_key=True)

    sku = Column(String(64), nullable=False)
    provider = Column(String(32), nullable=False)
    size = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)

    price = Column(Numeric(12, 2), nullable=False)
    sold_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            "sku", "provider", "size", "currency", "sold_at", "price",
            name="uq_sale_records_sale",
        ),
        Index("ix_sale_records_sold_at", "sold_at"),
    )
