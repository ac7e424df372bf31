# marketsync/schemas/marketplace.py
"""
Pydantic models for marketplace payloads.

Field aliases follow the marketplace's JSON keys; every model also accepts
the python field names so tests and mock clients can build them directly.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MarketplaceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MarketProduct(MarketplaceModel):
    product_id: str = Field(alias="productId")
    sku: str = Field(alias="styleId")
    brand: Optional[str] = None
    model: Optional[str] = Field(default=None, alias="title")
    colorway: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    category: Optional[str] = Field(default=None, alias="productType")


class MarketVariant(MarketplaceModel):
    variant_id: str = Field(alias="variantId")
    product_id: str = Field(alias="productId")
    size: Optional[str] = Field(default=None, alias="variantValue")


class PriceQuote(MarketplaceModel):
    currency: str = Field(alias="currencyCode")
    lowest_ask: Optional[Decimal] = Field(default=None, alias="lowestAskAmount")
    highest_bid: Optional[Decimal] = Field(default=None, alias="highestBidAmount")
    last_sale: Optional[Decimal] = Field(default=None, alias="lastSaleAmount")
    price: Optional[Decimal] = Field(default=None, alias="marketPrice")
    observed_at: Optional[datetime] = Field(default=None, alias="observedAt")

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("lowest_ask", "highest_bid", "last_sale", "price", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value == "" or value == 0 or value == "0":
            return None
        return value

    @property
    def has_market_data(self) -> bool:
        return any(v is not None for v in (self.lowest_ask, self.highest_bid, self.last_sale))


class SaleQuote(MarketplaceModel):
    currency: str = Field(alias="currencyCode")
    price: Decimal = Field(alias="amount")
    sold_at: datetime = Field(alias="createdAt")

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()


class RemoteListing(MarketplaceModel):
    listing_id: str = Field(alias="listingId")
    status: str = "UNKNOWN"
    amount: Optional[Decimal] = None
    currency: Optional[str] = Field(default=None, alias="currencyCode")
    product_id: Optional[str] = Field(default=None, alias="productId")
    variant_id: Optional[str] = Field(default=None, alias="variantId")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    payload: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteListing":
        """Flatten the nested product/variant objects the listings endpoint returns."""
        flat = dict(data)
        if isinstance(data.get("product"), dict):
            flat.setdefault("productId", data["product"].get("productId"))
        if isinstance(data.get("variant"), dict):
            flat.setdefault("variantId", data["variant"].get("variantId"))
        listing = cls.model_validate(flat)
        listing.payload = data
        return listing
