from .marketplace import (
    MarketProduct,
    MarketVariant,
    PriceQuote,
    SaleQuote,
    RemoteListing,
)
