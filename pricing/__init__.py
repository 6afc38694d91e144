"""
Price sync pipeline for collectible catalog items.

Subpackages:
    matching: Query construction, title relevance scoring, raw/graded segmentation
    stats: Outlier pruning and summary statistics
    loaders: Destination table profiling and schema-adaptive snapshot writes
    sources: Listing source contract and the HTTP implementation

Modules:
    catalog: Reads catalog items from the per-category card tables
    runner: Per-item pipeline orchestration under a bounded worker pool
    job: One full sync from settings (catalog -> runner)
    scheduler: APScheduler integration for periodic syncs

Flow:
    For each catalog item the runner builds a query, fetches listings,
    scores and segments them, prunes and summarizes each segment, and
    writes one snapshot per (item, category, segment). Failures stay
    within the item that raised them.

Usage:
    from core.database import create_engine
    from pricing.job import run_price_sync

    summary = await run_price_sync(create_engine(), category="pokemon", limit=100)
    print(f"Saved {summary.saved} snapshots, {summary.missing} items missing")
"""

__all__ = [
    "PriceSyncRunner",
    "PriceStatPersister",
    "TableProfiler",
    "CatalogRepository",
    "HTTPListingSource",
    "run_price_sync",
]
