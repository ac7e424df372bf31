from abc import ABC, abstractmethod
from typing import List, Optional

from marketsync.schemas.marketplace import (
    MarketProduct,
    MarketVariant,
    PriceQuote,
    SaleQuote,
    RemoteListing,
)


class MarketplaceClient(ABC):
    """
    Contract the sync engine needs from a marketplace.

    Absence is reported as None / empty lists, never as an exception.
    Per-call failures raise MarketplaceAPIError (or a subclass);
    credential problems raise MarketplaceAuthError.
    """

    provider: str

    @abstractmethod
    async def verify_connection(self) -> None:
        """Check credentials and reachability; raise MarketplaceAuthError / MarketplaceConnectionError"""
        pass

    @abstractmethod
    async def search_product(self, sku: str) -> Optional[MarketProduct]:
        """Find the catalog product for a style code, or None"""
        pass

    @abstractmethod
    async def get_variants(self, product_id: str) -> List[MarketVariant]:
        """Size variants of a product"""
        pass

    @abstractmethod
    async def get_price(self, product_id: str, variant_id: str, currency: str) -> Optional[PriceQuote]:
        """Current ask / bid / last sale for one variant, or None"""
        pass

    async def get_sales(self, product_id: str, variant_id: str, currency: str) -> List[SaleQuote]:
        """Recent sales for one variant. Optional capability."""
        return []

    @abstractmethod
    async def list_listings(self, user_id: str) -> List[RemoteListing]:
        """Every listing (active and inactive) the marketplace holds for the user"""
        pass

    async def aclose(self) -> None:
        pass
