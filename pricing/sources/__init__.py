"""
Listing sources
"""

from pricing.sources.base import ListingSource
from pricing.sources.http_source import HTTPListingSource

__all__ = ["ListingSource", "HTTPListingSource"]
