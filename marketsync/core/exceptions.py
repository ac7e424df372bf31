from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class MarketplaceError(BaseServiceError):
    """Base exception for marketplace integration errors."""
    pass


class MarketplaceAPIError(MarketplaceError):
    """Raised when a single marketplace call fails. Callers treat it as a per-item failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MarketplaceRateLimitError(MarketplaceAPIError):
    """Raised when the marketplace keeps answering 429/503 after retries."""
    pass


class MarketplaceTimeoutError(MarketplaceAPIError):
    """Raised when a marketplace call exceeds its timeout."""
    pass


class MarketplaceAuthError(MarketplaceError):
    """Raised on missing or rejected credentials (401/403). Fatal to the current job."""
    pass


class MarketplaceConnectionError(MarketplaceError):
    """Raised when the marketplace cannot be reached during connection verification."""
    pass


class SyncError(BaseServiceError):
    """Raised when a sync job cannot proceed."""
    pass


class NoInventoryError(SyncError):
    """Raised when a sync job has no usable inventory to work on."""
    pass


class RetentionError(BaseServiceError):
    """Base exception for rollup / prune errors."""
    pass


class RetentionOrderError(RetentionError):
    """Raised when pruning is attempted for a window that has not been rolled up."""
    pass


class DatabaseError(Exception):
    """Exception raised for database-related errors."""
    pass


# Errors that abort a sync job instead of being recorded per item.
FATAL_SYNC_ERRORS = (MarketplaceAuthError, MarketplaceConnectionError, NoInventoryError)
