"""
Core module exports.
"""
from .enums import (
    ListingStatus,
    LinkStatus,
    PriceSource,
    SyncStep,
    Granularity,
    RetentionTable,
)

from .exceptions import (
    BaseServiceError,
    MarketplaceError,
    MarketplaceAPIError,
    MarketplaceRateLimitError,
    MarketplaceTimeoutError,
    MarketplaceAuthError,
    MarketplaceConnectionError,
    SyncError,
    NoInventoryError,
    RetentionError,
    RetentionOrderError,
)

from .utils import (
    normalize_sku,
    normalize_size,
    utc_now,
)
