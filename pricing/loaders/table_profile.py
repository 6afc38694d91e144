"""
Destination table introspection.

Several near-identical price tables exist (one per category or vendor) and
they disagree on the id column name, the key constraint and which value
columns exist. A TableProfile captures those facts once per table; the
persister reads the cached profile on every write instead of querying the
catalog again.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)

ID_CANDIDATES = ("id", "card_id", "cardid", "cardId")

# Columns scoping a key beyond the item id, filled from the write itself
SCOPE_COLUMNS = ("game", "category", "segment")

VALUE_COLUMNS = (
    "sample_count",
    "min_cents", "min",
    "p25_cents", "p25",
    "median_cents", "median",
    "p75_cents", "p75",
    "max_cents", "max",
    "avg_cents", "avg",
    "low", "high",
    "currency",
    "sample_url",
    "method", "basis",
    "query",
    "captured_at",
)

TOUCH_COLUMNS = ("updated_at", "last_run")


@dataclass(frozen=True)
class TableProfile:
    """What a destination table looks like, as far as a snapshot write cares"""

    name: str
    id_column: str
    key_columns: Tuple[str, ...]
    has_unique: bool
    columns: FrozenSet[str]
    scope_columns: Tuple[str, ...]
    value_columns: Tuple[str, ...]
    touch_columns: Tuple[str, ...]
    table: Table = field(compare=False, repr=False)

    @property
    def non_key_scope_columns(self) -> Tuple[str, ...]:
        """Scope columns the table has but the key leaves out; still written on every row"""
        return tuple(c for c in self.scope_columns if c not in self.key_columns)


def choose_id_column(columns) -> Optional[str]:
    for candidate in ID_CANDIDATES:
        if candidate in columns:
            return candidate
    return None


def choose_key_columns(
    id_column: str,
    columns,
    key_sets: List[List[str]]
) -> Tuple[List[str], bool]:
    """
    Pick the key used to address one snapshot row.

    Preference: a unique/PK set holding the id column and every scope column
    the table has; then any unique/PK set holding the id column; then the id
    column plus the scope columns without a backing constraint. Only sets we
    can fill from a write (id + scope columns) qualify.
    """
    scope = [c for c in SCOPE_COLUMNS if c in columns]
    fillable = set(scope) | {id_column}
    usable = [ks for ks in key_sets if id_column in ks and set(ks) <= fillable]

    chosen = next((ks for ks in usable if all(c in ks for c in scope)), None)
    if chosen is None and usable:
        chosen = usable[0]
    if chosen is None:
        chosen = [id_column] + scope

    has_unique = any(set(ks) == set(chosen) for ks in key_sets)
    return list(chosen), has_unique


def _inspect_table(sync_conn, table_name: str):
    """Runs on the sync side of the async connection"""
    inspector = inspect(sync_conn)
    if not inspector.has_table(table_name):
        return None

    table = Table(table_name, MetaData(), autoload_with=sync_conn)

    key_sets: List[List[str]] = []
    pk = inspector.get_pk_constraint(table_name).get("constrained_columns") or []
    if pk:
        key_sets.append(list(pk))
    for uc in inspector.get_unique_constraints(table_name):
        cols = list(uc.get("column_names") or [])
        if cols and cols not in key_sets:
            key_sets.append(cols)
    for ix in inspector.get_indexes(table_name):
        cols = [c for c in (ix.get("column_names") or []) if c]
        if ix.get("unique") and cols and cols not in key_sets:
            key_sets.append(cols)

    return table, key_sets


def build_profile(table: Table, key_sets: List[List[str]]) -> TableProfile:
    columns = frozenset(c.name for c in table.columns)

    id_column = choose_id_column(columns)
    if id_column is None:
        raise SchemaMismatchError(
            f"Table {table.name} has no recognized id column",
            context={
                "table_name": table.name,
                "columns": sorted(columns),
                "expected_one_of": list(ID_CANDIDATES),
            }
        )

    key_columns, has_unique = choose_key_columns(id_column, columns, key_sets)

    return TableProfile(
        name=table.name,
        id_column=id_column,
        key_columns=tuple(key_columns),
        has_unique=has_unique,
        columns=columns,
        scope_columns=tuple(c for c in SCOPE_COLUMNS if c in columns),
        value_columns=tuple(c for c in VALUE_COLUMNS if c in columns and c not in key_columns),
        touch_columns=tuple(c for c in TOUCH_COLUMNS if c in columns),
        table=table,
    )


class TableProfiler:
    """
    Builds and caches TableProfiles for the lifetime of the process.

    Concurrent first requests for the same table share one introspection.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._profiles: Dict[str, TableProfile] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get_profile(self, table_name: str) -> TableProfile:
        profile = self._profiles.get(table_name)
        if profile is not None:
            return profile

        lock = self._locks.setdefault(table_name, asyncio.Lock())
        async with lock:
            profile = self._profiles.get(table_name)
            if profile is None:
                profile = await self._introspect(table_name)
                self._profiles[table_name] = profile
        return profile

    async def _introspect(self, table_name: str) -> TableProfile:
        try:
            async with self.engine.connect() as conn:
                result = await conn.run_sync(_inspect_table, table_name)
        except NoSuchTableError:
            result = None

        if result is None:
            raise SchemaMismatchError(
                f"Destination table {table_name} does not exist",
                context={"table_name": table_name}
            )

        table, key_sets = result
        profile = build_profile(table, key_sets)
        logger.info(
            f"Profiled {profile.name}: id={profile.id_column} "
            f"keys=[{', '.join(profile.key_columns)}] unique={profile.has_unique} "
            f"values=[{', '.join(profile.value_columns)}]"
        )
        return profile
