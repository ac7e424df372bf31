# marketsync/models/market_link.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from marketsync.database import Base
from marketsync.core.enums import LinkStatus
from marketsync.core.utils import utc_now


class InventoryMarketLink(Base):
    """
    Association between an owned inventory item and a marketplace catalog variant.

    At most one link per (inventory_id, provider). Links are never removed
    implicitly; a failed re-match is recorded in UnmatchedInventory instead.
    """
    __tablename__ = "inventory_market_links"

    id = Column(Integer, primary_key=True)

    inventory_id = Column(String(64), ForeignKey("inventory_items.id"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)

    provider_product_id = Column(String(128), nullable=False)
    provider_variant_id = Column(String(128), nullable=False)

    # Catalog sku/size the link resolved to; used to look up prices
    sku = Column(String(64), nullable=False)
    size = Column(String(32), nullable=False)

    status = Column(String(16), nullable=False, default=LinkStatus.ACTIVE.value)

    # Back-reference to a tracked sell listing; cleared when the listing disappears
    listing_id = Column(String(128), nullable=True, index=True)

    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("inventory_id", "provider", name="uq_inventory_market_links_item_provider"),
    )

    def __repr__(self):
        return (f"<InventoryMarketLink(inventory_id='{self.inventory_id}', provider='{self.provider}', "
                f"variant='{self.provider_variant_id}', listing='{self.listing_id}')>")


class UnmatchedInventory(Base):
    """Negative results of linking, one row per (inventory_id, provider)."""
    __tablename__ = "unmatched_inventory"

    id = Column(Integer, primary_key=True)

    inventory_id = Column(String(64), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    sku = Column(String(64), nullable=False)
    size = Column(String(32), nullable=True)
    reason = Column(String(32), nullable=False)

    attempts = Column(Integer, nullable=False, default=1)
    first_seen_at = Column(DateTime, default=utc_now, nullable=False)
    last_seen_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("inventory_id", "provider", name="uq_unmatched_inventory_item_provider"),
    )
