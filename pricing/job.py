"""
One full price sync: catalog -> runner -> summary
"""

from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.exceptions import ConfigurationError
from core.rate_limit import RateLimiter
from models.price_snapshot import PriceSnapshot
from pricing.catalog import CatalogRepository, resolve_categories
from pricing.loaders.persister import ensure_destination_table
from pricing.runner import PriceSyncRunner
from pricing.sources.base import ListingSource
from pricing.sources.http_source import HTTPListingSource
from schemas.pricing import RunSummary

logger = logging.getLogger(__name__)


def build_listing_source(rate_limiter: Optional[RateLimiter] = None) -> ListingSource:
    """
    Listing source from settings.

    Raises:
        ConfigurationError: LISTING_API_URL unset or pagination mode unknown
    """
    if not settings.LISTING_API_URL:
        raise ConfigurationError(
            "LISTING_API_URL is not configured",
            context={"setting": "LISTING_API_URL"}
        )
    try:
        return HTTPListingSource(
            api_url=settings.LISTING_API_URL,
            rate_limiter=rate_limiter,
        )
    except ValueError as e:
        raise ConfigurationError(
            str(e),
            context={"setting": "PAGINATION_MODE", "value": settings.PAGINATION_MODE},
            original_exception=e
        )


async def run_price_sync(
    engine: AsyncEngine,
    category: Optional[str] = None,
    limit: Optional[int] = None,
    concurrency: Optional[int] = None,
    since_year: Optional[int] = None,
    until_year: Optional[int] = None,
    source: Optional[ListingSource] = None
) -> RunSummary:
    """
    Load the catalog and price it.

    Setup problems (bad category, missing config, unusable destination)
    raise before any item is scheduled.
    """
    category = (category or settings.PRICE_CATEGORY).strip().lower()
    try:
        resolve_categories(category)
    except ValueError as e:
        raise ConfigurationError(str(e), context={"setting": "category", "value": category}, original_exception=e)

    source = source or build_listing_source()

    if settings.DESTINATION_TABLE == PriceSnapshot.__tablename__:
        await ensure_destination_table(engine)

    catalog = CatalogRepository(engine)
    items = await catalog.list_items(category, limit=limit, since_year=since_year, until_year=until_year)

    runner = PriceSyncRunner(engine, source, concurrency=concurrency)
    async with source:
        return await runner.run(items, category=category)
