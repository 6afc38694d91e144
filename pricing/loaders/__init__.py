"""
Snapshot persistence into destination tables of varying shape
"""

from pricing.loaders.persister import PriceStatPersister, ensure_destination_table
from pricing.loaders.table_profile import TableProfile, TableProfiler

__all__ = ["PriceStatPersister", "TableProfile", "TableProfiler", "ensure_destination_table"]
