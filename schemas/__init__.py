"""
Pydantic schemas for data validation throughout the price sync.

Schemas:
    catalog: CatalogItem, Listing, TitleScore, ScoredListing, RejectReason
    pricing: PriceStat, QuantileProfile, SegmentedPrices, ItemOutcome, RunSummary

Usage:
    from schemas.catalog import CatalogItem, Listing
    from schemas.pricing import PriceStat

Example:
    item = CatalogItem(id="base1-4", category="pokemon", name="Charizard",
                       set_name="Base Set", number="4")
    listing = Listing(title="Charizard #4 Base Set NM", total_price_minor_units=8000)
"""

__all__ = [
    "CatalogItem",
    "Listing",
    "TitleScore",
    "ScoredListing",
    "RejectReason",
    "PriceStat",
    "QuantileProfile",
    "SegmentedPrices",
    "ItemOutcome",
    "RunSummary",
]
