"""
HTTP listing source for JSON search endpoints.

This module provides listing extraction with:
- Offset or continuation-token pagination
- A hard cap on results per item
- Per-host request spacing shared across concurrent items
- Retry with jittered exponential backoff for 429/5xx/timeouts
- Status-code mapping onto the fetch exception taxonomy
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import logging

import httpx

from core.config import settings
from core.exceptions import (
    AuthenticationError,
    ClientRequestError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
from core.rate_limit import RateLimiter
from core.retry import RetryPolicy
from pricing.sources.base import ListingSource
from schemas.catalog import Listing

logger = logging.getLogger(__name__)

PAGINATION_MODES = ("offset", "token")

MINOR_UNIT_FIELDS = ("total_price_minor_units", "total_price_cents", "price_cents")
TITLE_FIELDS = ("title", "name")
URL_FIELDS = ("url", "item_url", "itemWebUrl", "link")
TOKEN_FIELDS = ("next_token", "next_cursor", "cursor", "continuation")


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Accepts 12.5, "12.50", "$12.50" or {"value": "12.50"}"""
    if isinstance(value, dict):
        value = value.get("value", value.get("amount"))
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
        if not value:
            return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def parse_minor_units(record: Dict[str, Any]) -> Optional[int]:
    """
    Landed price of a record in minor units.

    A minor-unit field wins when present; otherwise decimal price plus
    shipping (missing shipping counts as free) is converted.
    """
    for name in MINOR_UNIT_FIELDS:
        value = record.get(name)
        if value is not None and not isinstance(value, bool):
            try:
                return int(value)
            except (TypeError, ValueError):
                return None

    price = _to_decimal(record.get("price"))
    if price is None:
        return None
    shipping = _to_decimal(record.get("shipping")) or Decimal(0)
    total = (price + shipping) * 100
    return int(total.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_listing(record: Dict[str, Any]) -> Optional[Listing]:
    """Map one payload record onto a Listing; None when it has no usable price"""
    if not isinstance(record, dict):
        return None
    minor = parse_minor_units(record)
    if minor is None or minor <= 0:
        return None
    title = next((record[f] for f in TITLE_FIELDS if record.get(f)), "")
    url = next((record[f] for f in URL_FIELDS if record.get(f)), None)
    return Listing(title=title, total_price_minor_units=minor, url=url)


def extract_records(data: Any) -> List[Dict[str, Any]]:
    """Handle bare lists and the common envelope shapes"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("items", "data", "results", "itemSummaries"):
            if isinstance(data.get(key), list):
                return data[key]
    return []


def extract_next_token(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for key in TOKEN_FIELDS:
        if data.get(key):
            return str(data[key])
    return None


class HTTPListingSource(ListingSource):
    """
    Search a JSON listing endpoint over HTTP.

    Request shape: ``GET api_url?q=<query>&category=<category>&limit=<n>``
    plus ``offset=<k>`` (offset mode) or ``cursor=<token>`` (token mode).
    Offset paging ends on a short or empty page; token paging ends when the
    response carries no continuation token.

    Attributes:
        page_size: Records requested per page
        max_results: Cap on listings returned per query
        timeout: Request timeout in seconds
    """

    name = "http"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        pagination_mode: Optional[str] = None,
        page_size: Optional[int] = None,
        max_results: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None
    ):
        self.api_url = api_url
        self.api_key = api_key if api_key is not None else settings.LISTING_API_KEY
        self.pagination_mode = (pagination_mode or settings.PAGINATION_MODE).lower()
        if self.pagination_mode not in PAGINATION_MODES:
            raise ValueError(f"Unknown pagination mode: {self.pagination_mode}")
        self.page_size = page_size or settings.PAGE_SIZE
        self.max_results = max_results or settings.MAX_RESULTS_PER_ITEM
        self.rate_limiter = rate_limiter or RateLimiter(settings.PER_HOST_DELAY_MS / 1000.0)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.FETCH_MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
        )
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.user_agent = user_agent or settings.USER_AGENT

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _check_status(self, response: httpx.Response, context: Dict[str, Any]) -> None:
        """Raise the matching fetch error for a non-2xx response"""
        status = response.status_code
        if status < 400:
            return
        context = {**context, "status_code": status}

        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitError(f"Rate limited by {self.api_url}", context=context, retry_after=retry_after)
        if status >= 500:
            context["response_body"] = response.text[:500]
            raise NetworkError(f"Server error {status} from {self.api_url}", context=context)
        if status in (401, 403):
            raise AuthenticationError(f"Authentication failed for {self.api_url}", context=context)
        if status == 404:
            raise ResourceNotFoundError(f"Resource not found: {self.api_url}", context=context)
        raise ClientRequestError(f"Request rejected with {status}", context=context)

    async def _get_page(self, client: httpx.AsyncClient, params: Dict[str, Any]) -> Any:
        context = {"url": self.api_url, "query": params.get("q")}

        await self.rate_limiter.wait(self.api_url)
        try:
            response = await client.get(self.api_url, params=params, headers=self._headers())
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout after {self.timeout}s",
                context={**context, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError("Transport error", context=context, original_exception=e)

        self._check_status(response, context)

        try:
            return response.json()
        except ValueError as e:
            raise ClientRequestError(
                "Failed to parse JSON response",
                context={**context, "response_body": response.text[:500]},
                original_exception=e
            )

    def _page_params(self, query: str, category: str, offset: int, token: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": query, "category": category, "limit": self.page_size}
        if self.pagination_mode == "offset":
            params["offset"] = offset
        elif token:
            params["cursor"] = token
        return params

    async def fetch_listings(self, query: str, category: str) -> List[Listing]:
        """
        Fetch up to ``max_results`` priced listings for a query.

        Raises:
            NetworkError / RateLimitError: Retries exhausted
            AuthenticationError, ResourceNotFoundError, ClientRequestError:
                Terminal responses, not retried
        """
        listings: List[Listing] = []
        offset = 0
        token: Optional[str] = None
        pages = 0
        seen = 0
        skipped = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while len(listings) < self.max_results and seen < self.max_results:
                params = self._page_params(query, category, offset, token)
                data = await self.retry_policy.call(
                    self._get_page,
                    client,
                    params,
                    description=f"fetch page {pages + 1} for '{query}'",
                )
                pages += 1

                records = extract_records(data)
                seen += len(records)
                for record in records:
                    listing = parse_listing(record)
                    if listing is None:
                        skipped += 1
                        continue
                    listings.append(listing)

                if not records:
                    break
                if self.pagination_mode == "offset":
                    if len(records) < self.page_size:
                        break
                    offset += len(records)
                else:
                    token = extract_next_token(data)
                    if not token:
                        break

        listings = listings[:self.max_results]
        logger.debug(
            f"Fetched {len(listings)} listings for '{query}' ({pages} pages, {skipped} unpriced)"
        )
        return listings
