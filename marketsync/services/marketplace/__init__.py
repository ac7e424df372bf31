from typing import Optional

from marketsync.core.config import Settings, get_settings
from marketsync.services.marketplace.base import MarketplaceClient
from marketsync.services.marketplace.client import HttpMarketplaceClient


def get_marketplace_client(access_token: Optional[str] = None, settings: Optional[Settings] = None) -> MarketplaceClient:
    """Build the configured marketplace client (per-user token if given)."""
    return HttpMarketplaceClient(access_token=access_token, settings=settings or get_settings())


__all__ = ["MarketplaceClient", "HttpMarketplaceClient", "get_marketplace_client"]
