# marketsync/models/portfolio.py
from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, UniqueConstraint

from marketsync.database import Base
from marketsync.core.utils import utc_now


class PortfolioSnapshot(Base):
    """
    Daily market valuation of a user's inventory in one currency.

    One row per (user_id, snapshot_date, currency); refreshed by the
    REFRESH_AGGREGATES step of a sync run.
    """
    __tablename__ = "portfolio_snapshots"

    id = Column(Integer, primary_key=True)

    user_id = Column(String(64), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)

    market_value = Column(Numeric(14, 2), nullable=False)       # marketplace-priced items
    cost_basis_value = Column(Numeric(14, 2), nullable=False)   # unpriced items at acquisition cost
    total_value = Column(Numeric(14, 2), nullable=False)

    items_priced = Column(Integer, nullable=False, default=0)
    items_unpriced = Column(Integer, nullable=False, default=0)
    items_unvalued = Column(Integer, nullable=False, default=0)  # no price and no same-currency cost

    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "snapshot_date", "currency", name="uq_portfolio_snapshots_user_date_currency"),
    )
