import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from marketsync.core.config import Settings, get_settings
from marketsync.core.exceptions import (
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceConnectionError,
    MarketplaceRateLimitError,
    MarketplaceTimeoutError,
)
from marketsync.core.utils import normalize_sku
from marketsync.schemas.marketplace import (
    MarketProduct,
    MarketVariant,
    PriceQuote,
    SaleQuote,
    RemoteListing,
)
from marketsync.services.marketplace.base import MarketplaceClient

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 503)
AUTH_STATUS = (401, 403)


class HttpMarketplaceClient(MarketplaceClient):
    """
    Asynchronous client for a StockX-style marketplace REST API (v2).

    Every request is bounded by ``MARKETPLACE_TIMEOUT_SECONDS``. 429/503 are
    retried up to ``MARKETPLACE_MAX_RETRIES`` times honouring ``Retry-After``
    (capped); transport errors back off exponentially. A timeout is not
    retried. 404 means "absent" and is returned as None to the caller.
    """

    def __init__(
        self,
        access_token: str = None,
        api_key: str = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.provider = self.settings.MARKETPLACE_PROVIDER.lower()
        self.access_token = access_token if access_token is not None else self.settings.MARKETPLACE_ACCESS_TOKEN
        self.api_key = api_key if api_key is not None else self.settings.MARKETPLACE_API_KEY
        self.base_url = self.settings.MARKETPLACE_API_URL.rstrip("/")
        self.timeout = self.settings.MARKETPLACE_TIMEOUT_SECONDS
        self.max_retries = self.settings.MARKETPLACE_MAX_RETRIES
        self.max_backoff = self.settings.MARKETPLACE_MAX_BACKOFF_SECONDS
        self._transport = transport
        self._sleep = sleep

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        if not self.access_token or not self.api_key:
            raise MarketplaceAuthError(f"{self.provider} credentials are not configured")
        return {
            "Authorization": f"Bearer {self.access_token}",
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _backoff_for(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        try:
            delay = float(retry_after) if retry_after is not None else 2 ** attempt
        except ValueError:
            delay = 2 ** attempt
        return min(max(delay, 0.0), self.max_backoff)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        allow_not_found: bool = True,
    ) -> Optional[Any]:
        """
        Make a request to the marketplace API

        Returns:
            Decoded JSON body, {} for 204, or None for 404 when allow_not_found

        Raises:
            MarketplaceAuthError: missing credentials, 401/403
            MarketplaceRateLimitError: 429/503 after retries
            MarketplaceTimeoutError: the call timed out
            MarketplaceAPIError: any other failure
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = self._get_headers()
        logger.debug(f"Making {method} request to {url} params={params}")

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.request(method=method, url=url, headers=headers, params=params)
            except httpx.TimeoutException as e:
                logger.error(f"Timeout calling {endpoint}: {e}")
                raise MarketplaceTimeoutError(f"Request timed out after {self.timeout}s: {endpoint}")
            except httpx.TransportError as e:
                last_error = e
                if attempt < self.max_retries:
                    backoff = min(2 ** attempt, self.max_backoff)
                    logger.warning(f"Network error on {endpoint} (attempt {attempt + 1}), retrying in {backoff}s: {e}")
                    await self._sleep(backoff)
                    continue
                raise MarketplaceAPIError(f"Network error: {e}")

            if response.status_code in AUTH_STATUS:
                logger.error(f"{self.provider} rejected credentials ({response.status_code}) on {endpoint}")
                raise MarketplaceAuthError(f"{self.provider} returned {response.status_code} for {endpoint}")

            if response.status_code in RETRYABLE_STATUS:
                last_error = MarketplaceRateLimitError(
                    f"{self.provider} returned {response.status_code} for {endpoint}",
                    status_code=response.status_code,
                )
                if attempt < self.max_retries:
                    backoff = self._backoff_for(response, attempt)
                    logger.warning(f"Rate limited on {endpoint} (attempt {attempt + 1}), retrying in {backoff}s")
                    await self._sleep(backoff)
                    continue
                raise last_error

            if response.status_code == 404 and allow_not_found:
                return None

            if response.status_code not in (200, 201, 202, 204):
                logger.error(f"{self.provider} API error {response.status_code}: {response.text[:500]}")
                raise MarketplaceAPIError(
                    f"Request failed ({response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                )

            if response.status_code == 204:
                return {}

            try:
                return response.json()
            except ValueError:
                raise MarketplaceAPIError(f"Malformed JSON from {endpoint}", status_code=response.status_code)

        raise MarketplaceAPIError(f"Request failed after retries: {last_error}")

    async def verify_connection(self) -> None:
        try:
            await self._make_request(
                "GET", "/v2/selling/listings", params={"pageSize": 1, "pageNumber": 1}, allow_not_found=False
            )
        except (MarketplaceAuthError, MarketplaceConnectionError):
            raise
        except MarketplaceAPIError as e:
            raise MarketplaceConnectionError(f"Could not reach {self.provider}: {e}")
        logger.info(f"Verified {self.provider} connection")

    async def search_product(self, sku: str) -> Optional[MarketProduct]:
        data = await self._make_request("GET", "/v2/catalog/search", params={"query": sku, "pageSize": 10})
        if not data:
            return None

        what = f"search {sku}"
        wanted = normalize_sku(sku)
        for raw in self._rows(self._object(data, what).get("products"), what):
            if normalize_sku(raw.get("styleId")) != wanted:
                continue
            attributes = raw.get("productAttributes")
            if not isinstance(attributes, dict):
                attributes = {}
            raw = {**raw, "colorway": raw.get("colorway") or attributes.get("colorway")}
            return self._parse(MarketProduct, raw, f"product {sku}")
        return None

    async def get_variants(self, product_id: str) -> List[MarketVariant]:
        data = await self._make_request("GET", f"/v2/catalog/products/{product_id}/variants")
        if not data:
            return []
        what = f"variants of {product_id}"
        rows = data if isinstance(data, list) else self._object(data, what).get("variants")
        return [self._parse(MarketVariant, {"productId": product_id, **row}, what) for row in self._rows(rows, what)]

    async def get_price(self, product_id: str, variant_id: str, currency: str) -> Optional[PriceQuote]:
        data = await self._make_request(
            "GET",
            f"/v2/catalog/products/{product_id}/variants/{variant_id}/market-data",
            params={"currencyCode": currency},
        )
        if not data:
            return None
        what = f"market data {product_id}/{variant_id}"
        return self._parse(PriceQuote, {"currencyCode": currency, **self._object(data, what)}, what)

    async def get_sales(self, product_id: str, variant_id: str, currency: str) -> List[SaleQuote]:
        data = await self._make_request(
            "GET",
            f"/v2/catalog/products/{product_id}/variants/{variant_id}/sales",
            params={"currencyCode": currency},
        )
        if not data:
            return []
        what = f"sales {product_id}/{variant_id}"
        return [
            self._parse(SaleQuote, {"currencyCode": currency, **row}, what)
            for row in self._rows(self._object(data, what).get("sales"), what)
        ]

    async def list_listings(self, user_id: str) -> List[RemoteListing]:
        """
        Fetch every listing page by page until hasNextPage is false.

        Raises:
            MarketplaceAPIError: a page is malformed, or LISTINGS_MAX_PAGES pages
                were read and the marketplace still reports more
        """
        listings: Dict[str, RemoteListing] = {}
        page_size = self.settings.LISTINGS_PAGE_SIZE
        max_pages = self.settings.LISTINGS_MAX_PAGES

        for page_number in range(1, max_pages + 1):
            what = f"listings page {page_number}"
            data = await self._make_request(
                "GET",
                "/v2/selling/listings",
                params={"pageSize": page_size, "pageNumber": page_number},
                allow_not_found=False,
            ) or {}
            data = self._object(data, what)
            page = self._rows(data.get("listings"), what)
            for raw in page:
                if not raw.get("listingId"):
                    continue
                listing = self._parse_listing(raw)
                listings[listing.listing_id] = listing

            if not data.get("hasNextPage") or not page:
                break
        else:
            logger.error(f"Listings for user {user_id} exceed the {max_pages} page cap; result is incomplete")
            raise MarketplaceAPIError(
                f"{self.provider} still reports more listings after {max_pages} pages; refusing a partial listing set"
            )

        logger.info(f"Fetched {len(listings)} {self.provider} listings for user {user_id}")
        return list(listings.values())

    def _parse_listing(self, raw: Dict[str, Any]) -> RemoteListing:
        try:
            return RemoteListing.from_api(raw)
        except ValidationError as e:
            raise MarketplaceAPIError(f"Malformed listing {raw.get('listingId')}: {e}")

    @staticmethod
    def _object(data: Any, what: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise MarketplaceAPIError(f"Malformed {what}: expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _rows(rows: Any, what: str) -> List[Dict[str, Any]]:
        if rows is None:
            return []
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise MarketplaceAPIError(f"Malformed {what}: expected a list of JSON objects")
        return rows

    @staticmethod
    def _parse(model, raw: Dict[str, Any], what: str):
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise MarketplaceAPIError(f"Malformed {what}: {e}")
