"""
Abstract listing source contract
"""

from abc import ABC, abstractmethod
from typing import List

from schemas.catalog import Listing


class ListingSource(ABC):
    """
    Abstract base class for marketplace listing sources.

    A source is a black box returning listings for a search query. Vendor
    specifics (auth, paging, payload shape) stay behind this interface.
    """

    name: str = "listing_source"

    @abstractmethod
    async def fetch_listings(self, query: str, category: str) -> List[Listing]:
        """
        Fetch listings matching a search query.

        Args:
            query: Search string produced by the query builder
            category: Catalog category the query belongs to

        Returns:
            Listings with a positive landed price

        Raises:
            FetchError: When the source cannot be read
        """
        pass

    async def close(self) -> None:
        """Release any held connections"""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
