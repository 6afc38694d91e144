"""
Split a batch of listings into raw and graded price samples
"""

from typing import Iterable, List
import logging

from schemas.catalog import CatalogItem, Listing, ScoredListing
from schemas.pricing import SegmentedPrices
from pricing.matching.relevance import score_title

logger = logging.getLogger(__name__)

DEFAULT_SCORE_GATE = 50


def score_listings(item: CatalogItem, listings: Iterable[Listing]) -> List[ScoredListing]:
    return [ScoredListing.from_listing(listing, score_title(item, listing.title)) for listing in listings]


def segment_listings(
    item: CatalogItem,
    listings: Iterable[Listing],
    score_gate: int = DEFAULT_SCORE_GATE
) -> SegmentedPrices:
    """
    Score every listing and bucket the accepted prices.

    Listings with a reject reason or a score below the gate are dropped;
    the rest land in ``graded`` or ``raw`` according to the graded flag.
    Input order is preserved inside each bucket.
    """
    result = SegmentedPrices()

    for scored in score_listings(item, listings):
        if scored.reject_reason is not None:
            reason = scored.reject_reason.value
            result.rejected[reason] = result.rejected.get(reason, 0) + 1
            continue
        if scored.score < score_gate:
            result.below_gate += 1
            continue

        bucket = result.graded if scored.graded else result.raw
        bucket.append(scored.total_price_minor_units)
        if result.sample_url is None and scored.url:
            result.sample_url = scored.url

    logger.debug(
        f"{item.category}/{item.id}: raw={len(result.raw)} graded={len(result.graded)} "
        f"below_gate={result.below_gate} rejected={result.rejected}"
    )
    return result
