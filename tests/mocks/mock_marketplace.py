from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from marketsync.core.exceptions import (
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceConnectionError,
)
from marketsync.core.utils import normalize_sku
from marketsync.schemas.marketplace import (
    MarketProduct,
    MarketVariant,
    PriceQuote,
    RemoteListing,
    SaleQuote,
)
from marketsync.services.marketplace.base import MarketplaceClient


class MockMarketplaceClient(MarketplaceClient):
    """In-memory marketplace with toggles for the failure modes the engine handles."""

    def __init__(self, provider: str = "stockx"):
        self.provider = provider
        self.products: Dict[str, MarketProduct] = {}            # normalized sku -> product
        self.variants: Dict[str, List[MarketVariant]] = {}      # product_id -> variants
        self.prices: Dict[Tuple[str, str, str], PriceQuote] = {}
        self.sales: Dict[Tuple[str, str, str], List[SaleQuote]] = {}
        self.listings: Dict[str, List[RemoteListing]] = {}      # user_id -> listings

        self.fail_skus: Set[str] = set()      # search_product raises MarketplaceAPIError
        self.fail_variants: Set[str] = set()  # get_price raises MarketplaceAPIError
        self.auth_fails = False               # every call raises MarketplaceAuthError
        self.connection_fails = False         # verify_connection raises MarketplaceConnectionError
        self.listings_fail = False            # list_listings raises MarketplaceAPIError
        self.calls: list = []

    def add_product(
        self,
        sku: str,
        sizes: Dict[str, Dict[str, Optional[str]]],
        product_id: Optional[str] = None,
        currency: str = "GBP",
    ) -> MarketProduct:
        """Register a product; ``sizes`` maps a size label to its price fields (or {} for no data)."""
        product_id = product_id or f"prod-{normalize_sku(sku)}"
        product = MarketProduct(product_id=product_id, sku=sku, brand="Nike", model=f"Model {sku}")
        self.products[normalize_sku(sku)] = product
        self.variants[product_id] = []
        for size, fields in sizes.items():
            variant_id = f"{product_id}-{size}"
            self.variants[product_id].append(MarketVariant(variant_id=variant_id, product_id=product_id, size=size))
            if fields:
                self.set_price(product_id, variant_id, currency, **fields)
        return product

    def set_price(self, product_id: str, variant_id: str, currency: str, **fields) -> None:
        self.prices[(product_id, variant_id, currency.upper())] = PriceQuote(
            currency=currency,
            **{k: Decimal(str(v)) if v is not None else None for k, v in fields.items()},
        )

    def add_listing(self, user_id: str, listing_id: str, status: str = "ACTIVE", amount: str = "200", **extra) -> None:
        self.listings.setdefault(user_id, []).append(
            RemoteListing(listing_id=listing_id, status=status, amount=Decimal(amount), **extra)
        )

    def _check_auth(self):
        if self.auth_fails:
            raise MarketplaceAuthError("401 Unauthorized")

    async def verify_connection(self) -> None:
        self.calls.append(("verify_connection",))
        self._check_auth()
        if self.connection_fails:
            raise MarketplaceConnectionError("connection refused")

    async def search_product(self, sku: str) -> Optional[MarketProduct]:
        self.calls.append(("search_product", sku))
        self._check_auth()
        if normalize_sku(sku) in self.fail_skus:
            raise MarketplaceAPIError(f"simulated failure for {sku}", status_code=500)
        return self.products.get(normalize_sku(sku))

    async def get_variants(self, product_id: str) -> List[MarketVariant]:
        self.calls.append(("get_variants", product_id))
        self._check_auth()
        return list(self.variants.get(product_id, []))

    async def get_price(self, product_id: str, variant_id: str, currency: str) -> Optional[PriceQuote]:
        self.calls.append(("get_price", product_id, variant_id, currency))
        self._check_auth()
        if variant_id in self.fail_variants:
            raise MarketplaceAPIError(f"simulated failure for {variant_id}", status_code=503)
        return self.prices.get((product_id, variant_id, currency.upper()))

    async def get_sales(self, product_id: str, variant_id: str, currency: str) -> List[SaleQuote]:
        self.calls.append(("get_sales", product_id, variant_id, currency))
        self._check_auth()
        return list(self.sales.get((product_id, variant_id, currency.upper()), []))

    async def list_listings(self, user_id: str) -> List[RemoteListing]:
        self.calls.append(("list_listings", user_id))
        self._check_auth()
        if self.listings_fail:
            raise MarketplaceAPIError("listings endpoint unavailable", status_code=503)
        return list(self.listings.get(user_id, []))

    def calls_to(self, name: str) -> list:
        return [c for c in self.calls if c[0] == name]
