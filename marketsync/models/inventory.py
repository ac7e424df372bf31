# marketsync/models/inventory.py
"""
Owned inventory, as mirrored from the surrounding portfolio application.

The sync engine only reads this table.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric

from marketsync.database import Base
from marketsync.core.enums import InventoryStatus
from marketsync.core.utils import utc_now


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)

    sku = Column(String(64), nullable=False)
    size = Column(String(32), nullable=True)  # in the user's preferred size system, e.g. "UK10"
    quantity = Column(Integer, nullable=False, default=1)

    purchase_price = Column(Numeric(12, 2), nullable=True)
    purchase_currency = Column(String(3), nullable=True)

    status = Column(String(16), nullable=False, default=InventoryStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<InventoryItem(id='{self.id}', sku='{self.sku}', size='{self.size}', qty={self.quantity})>"
