# marketsync/services/price_resolver.py
"""
Resolves one authoritative market value for an inventory item.

The user's currency is a filter, not a conversion target: only observations
recorded in that currency are considered. Within an observation the fields
are tried in a fixed order (last sale, lowest ask, highest bid) and the first
present one wins. "No price" is a normal result (PriceSource.NONE), never an
exception, and callers fall back to acquisition cost rather than zero.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import PriceField, PriceSource
from marketsync.models.inventory import InventoryItem
from marketsync.models.market_link import InventoryMarketLink
from marketsync.services.inventory_source import InventoryRecord
from marketsync.services.price_store import LatestPrice, PriceStore

logger = logging.getLogger(__name__)

FALLBACK_CHAIN = (PriceField.LAST_SALE, PriceField.LOWEST_ASK, PriceField.HIGHEST_BID)


@dataclass(frozen=True)
class ResolvedPrice:
    value: Optional[Decimal]
    source: PriceSource
    as_of: Optional[datetime]
    currency: str
    unit_value: Optional[Decimal] = None
    quantity: int = 0
    provider: Optional[str] = None
    field: Optional[PriceField] = None

    @property
    def is_priced(self) -> bool:
        return self.source is PriceSource.MARKETPLACE

    @classmethod
    def none(cls, currency: str, quantity: int = 0) -> "ResolvedPrice":
        return cls(value=None, source=PriceSource.NONE, as_of=None, currency=currency, quantity=quantity)


def pick_market_value(latest: LatestPrice) -> Optional[Tuple[Decimal, PriceField]]:
    """First non-null field in FALLBACK_CHAIN; values are never blended."""
    for price_field in FALLBACK_CHAIN:
        value = getattr(latest, price_field.value)
        if value is not None:
            return value, price_field
    return None


class PriceResolver:
    def __init__(self, db: AsyncSession, price_store: Optional[PriceStore] = None, settings: Optional[Settings] = None):
        self.db = db
        self.price_store = price_store or PriceStore(db)
        self.settings = settings or get_settings()

    async def resolve(self, inventory_id: str, user_currency: str) -> ResolvedPrice:
        currency = user_currency.upper()
        item = await self.db.get(InventoryItem, inventory_id)
        if item is None:
            logger.debug(f"Inventory item {inventory_id} not found")
            return ResolvedPrice.none(currency)
        return await self.resolve_item(item, currency)

    async def resolve_item(self, item: Union[InventoryItem, InventoryRecord], user_currency: str) -> ResolvedPrice:
        currency = user_currency.upper()
        quantity = item.quantity if item.quantity is not None else 1

        links = await self._links_for(item.id)
        if not links:
            return ResolvedPrice.none(currency, quantity)

        for link in links:
            latest = await self.price_store.latest(link.sku, link.provider, link.size, currency)
            if latest is None:
                continue
            picked = pick_market_value(latest)
            if picked is None:
                continue

            unit_value, price_field = picked
            return ResolvedPrice(
                value=unit_value * quantity,
                source=PriceSource.MARKETPLACE,
                as_of=latest.observed_at,
                currency=currency,
                unit_value=unit_value,
                quantity=quantity,
                provider=link.provider,
                field=price_field,
            )

        return ResolvedPrice.none(currency, quantity)

    async def _links_for(self, inventory_id: str) -> List[InventoryMarketLink]:
        links = (
            await self.db.execute(
                select(InventoryMarketLink).where(InventoryMarketLink.inventory_id == inventory_id)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()

        priority = self.settings.provider_priority

        def rank(link: InventoryMarketLink):
            provider = link.provider.lower()
            return (priority.index(provider) if provider in priority else len(priority), provider)

        return sorted(links, key=rank)
