"""
Shared enums and constants used across the sync engine.
"""

from enum import Enum


class ListingStatus(str, Enum):
    """Local states of a tracked sell listing. DELETED is terminal."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SOLD = "SOLD"
    DELETED = "DELETED"


class LinkStatus(str, Enum):
    ACTIVE = "ACTIVE"


class UnmatchedReason(str, Enum):
    CATALOG_NOT_FOUND = "catalog_not_found"
    SIZE_NOT_FOUND = "size_not_found"


class PriceSource(str, Enum):
    MARKETPLACE = "MARKETPLACE"
    NONE = "NONE"


class PriceField(str, Enum):
    """Observation fields in resolver fallback order."""
    LAST_SALE = "last_sale"
    LOWEST_ASK = "lowest_ask"
    HIGHEST_BID = "highest_bid"


class SyncStep(str, Enum):
    VERIFY_CONNECTION = "VERIFY_CONNECTION"
    FETCH_INVENTORY = "FETCH_INVENTORY"
    SYNC_CATALOG_PRICES = "SYNC_CATALOG_PRICES"
    LINK_INVENTORY = "LINK_INVENTORY"
    REFRESH_AGGREGATES = "REFRESH_AGGREGATES"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

class Granularity(str, Enum):
    DAY = "DAY"
    MONTH = "MONTH"


class RollupSeries(str, Enum):
    PRICES = "prices"
    SALES = "sales"


class RetentionTable(str, Enum):
    PRICE_OBSERVATIONS = "price_observations"
    SALE_RECORDS = "sale_records"
    PRICE_ROLLUPS_DAILY = "price_rollups_daily"


class InventoryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LISTED = "LISTED"
    SOLD = "SOLD"
    ARCHIVED = "ARCHIVED"
