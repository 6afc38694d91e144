"""
Catalog item source: reads items to price from the per-category card tables
"""

from typing import Dict, List, Optional, Tuple
import logging

from pydantic import ValidationError
from sqlalchemy import MetaData, Table, inspect, select
from sqlalchemy.ext.asyncio import AsyncEngine

from schemas.catalog import CatalogItem

logger = logging.getLogger(__name__)

CATEGORIES = ("sports", "pokemon", "ygo", "mtg")

CATALOG_TABLES: Dict[str, str] = {
    "sports": "sc_cards",
    "pokemon": "tcg_cards",
    "ygo": "ygo_cards",
    "mtg": "mtg_cards",
}

# CatalogItem field -> column candidates, first present wins
FIELD_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "card_id"),
    "name": ("name", "card_name"),
    "set_name": ("set_name", "set"),
    "set_code": ("set_code",),
    "number": ("number", "card_number", "collector_number"),
    "year": ("year", "release_year"),
    "player": ("player", "player_name"),
    "team": ("team",),
    "sport": ("sport",),
}


def resolve_categories(category: str) -> List[str]:
    category = (category or "all").strip().lower()
    if category == "all":
        return list(CATEGORIES)
    if category not in CATALOG_TABLES:
        raise ValueError(f"Unknown category '{category}', expected one of: all, {', '.join(CATEGORIES)}")
    return [category]


def map_columns(columns) -> Dict[str, str]:
    """CatalogItem field -> physical column, for the columns a table has"""
    mapping = {}
    for field, candidates in FIELD_COLUMNS.items():
        for candidate in candidates:
            if candidate in columns:
                mapping[field] = candidate
                break
    return mapping


def _reflect(sync_conn, table_name: str) -> Optional[Table]:
    if not inspect(sync_conn).has_table(table_name):
        return None
    return Table(table_name, MetaData(), autoload_with=sync_conn)


class CatalogRepository:
    """
    Read-only access to catalog items.

    Card tables differ per category (``ygo_cards`` keys on ``card_id``,
    ``mtg_cards`` calls the number ``collector_number``), so columns are
    resolved by reflection and only the ones present are selected.
    """

    def __init__(self, engine: AsyncEngine, tables: Optional[Dict[str, str]] = None):
        self.engine = engine
        self.tables = tables or CATALOG_TABLES

    async def list_items(
        self,
        category: str = "all",
        limit: Optional[int] = None,
        since_year: Optional[int] = None,
        until_year: Optional[int] = None
    ) -> List[CatalogItem]:
        """
        Load catalog items for one category or all of them.

        ``limit`` applies across the whole result. Year bounds only filter
        tables that carry a year column.
        """
        items: List[CatalogItem] = []

        for cat in resolve_categories(category):
            remaining = None if limit is None else limit - len(items)
            if remaining is not None and remaining <= 0:
                break
            items.extend(await self._load_category(cat, remaining, since_year, until_year))

        logger.info(f"Loaded {len(items)} catalog items for category={category}")
        return items

    async def _load_category(
        self,
        category: str,
        limit: Optional[int],
        since_year: Optional[int],
        until_year: Optional[int]
    ) -> List[CatalogItem]:
        table_name = self.tables[category]

        async with self.engine.connect() as conn:
            table = await conn.run_sync(_reflect, table_name)
            if table is None:
                logger.warning(f"Catalog table {table_name} not found; skipping {category}")
                return []

            mapping = map_columns({c.name for c in table.columns})
            if "id" not in mapping:
                logger.warning(f"Catalog table {table_name} has no id column; skipping {category}")
                return []

            stmt = select(*[table.c[col].label(field) for field, col in mapping.items()])
            year_col = mapping.get("year")
            if year_col and since_year is not None:
                stmt = stmt.where(table.c[year_col] >= since_year)
            if year_col and until_year is not None:
                stmt = stmt.where(table.c[year_col] <= until_year)
            stmt = stmt.order_by(table.c[mapping["id"]])
            if limit is not None:
                stmt = stmt.limit(limit)

            result = await conn.execute(stmt)
            rows = result.mappings().all()

        items = []
        for row in rows:
            try:
                items.append(CatalogItem(category=category, **dict(row)))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {category} row {row.get('id')}: {e.errors()[0]['msg']}")
        return items
