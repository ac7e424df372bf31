# marketsync/services/valuation.py
"""Portfolio valuation written by the REFRESH_AGGREGATES step."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.utils import dialect_insert, utc_now
from marketsync.models.portfolio import PortfolioSnapshot
from marketsync.services.inventory_source import InventoryRecord
from marketsync.services.price_resolver import PriceResolver

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class PortfolioValuation:
    user_id: str
    currency: str
    snapshot_date: date
    market_value: Decimal = ZERO
    cost_basis_value: Decimal = ZERO
    items_priced: int = 0
    items_unpriced: int = 0
    items_unvalued: int = 0

    @property
    def total_value(self) -> Decimal:
        return self.market_value + self.cost_basis_value

    def as_counts(self) -> dict:
        return {
            "items_priced": self.items_priced,
            "items_unpriced": self.items_unpriced,
            "items_unvalued": self.items_unvalued,
            "market_value": str(self.market_value),
            "total_value": str(self.total_value),
        }


class PortfolioValuationService:
    """Caller owns the transaction."""

    def __init__(self, db: AsyncSession, resolver: Optional[PriceResolver] = None):
        self.db = db
        self.resolver = resolver or PriceResolver(db)

    async def value(self, user_id: str, currency: str, items: Iterable[InventoryRecord]) -> PortfolioValuation:
        """
        Value every item in one currency.

        Priced items count at market value; unpriced items count at their
        acquisition cost when it is in the same currency, otherwise they are
        left out of the totals and counted as unvalued.
        """
        currency = currency.upper()
        valuation = PortfolioValuation(user_id=user_id, currency=currency, snapshot_date=utc_now().date())

        for item in items:
            resolved = await self.resolver.resolve_item(item, currency)
            if resolved.is_priced:
                valuation.market_value += resolved.value
                valuation.items_priced += 1
                continue

            valuation.items_unpriced += 1
            if item.purchase_price is not None and item.purchase_currency == currency:
                valuation.cost_basis_value += item.purchase_price * item.quantity
            else:
                valuation.items_unvalued += 1

        return valuation

    async def refresh(self, user_id: str, currency: str, items: Iterable[InventoryRecord]) -> PortfolioValuation:
        """Value the items and upsert today's snapshot."""
        valuation = await self.value(user_id, currency, items)

        stmt = dialect_insert(self.db, PortfolioSnapshot).values(
            user_id=valuation.user_id,
            snapshot_date=valuation.snapshot_date,
            currency=valuation.currency,
            market_value=valuation.market_value,
            cost_basis_value=valuation.cost_basis_value,
            total_value=valuation.total_value,
            items_priced=valuation.items_priced,
            items_unpriced=valuation.items_unpriced,
            items_unvalued=valuation.items_unvalued,
            updated_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "snapshot_date", "currency"],
            set_={
                "market_value": stmt.excluded.market_value,
                "cost_basis_value": stmt.excluded.cost_basis_value,
                "total_value": stmt.excluded.total_value,
                "items_priced": stmt.excluded.items_priced,
                "items_unpriced": stmt.excluded.items_unpriced,
                "items_unvalued": stmt.excluded.items_unvalued,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)

        logger.info(
            f"Portfolio {user_id} ({valuation.currency}): total={valuation.total_value} "
            f"priced={valuation.items_priced} unpriced={valuation.items_unpriced} unvalued={valuation.items_unvalued}"
        )
        return valuation
