# marketsync/services/inventory_source.py
"""Read-only access to the portfolio's inventory rows."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import InventoryStatus
from marketsync.models.inventory import InventoryItem

logger = logging.getLogger(__name__)

SYNCABLE_STATUSES = (InventoryStatus.ACTIVE.value, InventoryStatus.LISTED.value)


@dataclass(frozen=True)
class InventoryRecord:
    """Detached snapshot of an inventory row; safe to use across commits and rollbacks."""
    id: str
    user_id: str
    sku: str
    size: Optional[str]
    quantity: int
    purchase_price: Optional[Decimal] = None
    purchase_currency: Optional[str] = None

    @classmethod
    def from_model(cls, item: InventoryItem) -> "InventoryRecord":
        return cls(
            id=item.id,
            user_id=item.user_id,
            sku=item.sku,
            size=item.size,
            quantity=item.quantity if item.quantity is not None else 1,
            purchase_price=item.purchase_price,
            purchase_currency=(item.purchase_currency or "").upper() or None,
        )


class InventorySource:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def items_for_user(self, user_id: str) -> List[InventoryRecord]:
        """Items that still need market data: owned (active or listed) with a SKU."""
        stmt = (
            select(InventoryItem)
            .where(
                InventoryItem.user_id == user_id,
                InventoryItem.status.in_(SYNCABLE_STATUSES),
                InventoryItem.sku.is_not(None),
                InventoryItem.sku != "",
            )
            .order_by(InventoryItem.created_at, InventoryItem.id)
        )
        items = (await self.db.execute(stmt)).scalars().all()
        return [InventoryRecord.from_model(item) for item in items]

    async def user_ids(self) -> List[str]:
        stmt = (
            select(InventoryItem.user_id)
            .where(InventoryItem.status.in_(SYNCABLE_STATUSES))
            .distinct()
            .order_by(InventoryItem.user_id)
        )
        return list((await self.db.execute(stmt)).scalars().all())
