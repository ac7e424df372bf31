from marketsync.database import Base

from .catalog import CatalogProduct, CatalogVariant
from .price import PriceObservation, MarketPriceLatest, SaleRecord
from .inventory import InventoryItem
from .market_link import InventoryMarketLink, UnmatchedInventory
from .listing import TrackedListing
from .rollup import PriceRollup, SaleRollup, RollupState
from .portfolio import PortfolioSnapshot

__all__ = [
    "Base",
    "CatalogProduct",
    "CatalogVariant",
    "PriceObservation",
    "MarketPriceLatest",
    "SaleRecord",
    "InventoryItem",
    "InventoryMarketLink",
    "UnmatchedInventory",
    "TrackedListing",
    "PriceRollup",
    "SaleRollup",
    "RollupState",
    "PortfolioSnapshot",
]
