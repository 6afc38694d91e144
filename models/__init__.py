"""
SQLAlchemy ORM models for the tables this pipeline owns.

Models:
    base: Base declarative class and shared enums (Segment, SyncStatus, ItemState)
    price_snapshot: Default destination table, one row per (card, category, segment)
    sync_run: Per-run audit record with the run counters

Other destination tables (per-vendor price tables with their own layouts)
are not modelled here; the schema-adaptive persister discovers them at run
time.

Usage:
    from models.base import Base, Segment
    from models.price_snapshot import PriceSnapshot
    from models.sync_run import PriceSyncRun
"""

__all__ = [
    "Base",
    "Segment",
    "SyncStatus",
    "ItemState",
    "PriceSnapshot",
    "PriceSyncRun",
]
