"""
Write price snapshots into destination tables of varying shape (idempotency)
"""

from typing import Any, Dict, Optional
import logging

from sqlalchemy import and_, func, insert, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    PersistenceError,
    SerializationError,
)
from core.retry import RetryPolicy
from models.base import Base, Segment
from models.price_snapshot import PriceSnapshot
from models.sync_run import PriceSyncRun
from pricing.loaders.table_profile import TableProfile, TableProfiler
from schemas.catalog import CatalogItem
from schemas.pricing import PriceStat

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "sold_listings"

# admin shutdown, crash shutdown, too many connections, connection failures
TRANSIENT_CONNECTION_CODES = {"57P01", "57P02", "53300", "08006", "08000", "08003", "08001", "08P01"}
# serialization failure, deadlock
TRANSIENT_SERIALIZATION_CODES = {"40001", "40P01"}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    # asyncpg errors arrive wrapped by the adapter; the code may sit on the cause
    for source in (getattr(exc, "orig", None), getattr(getattr(exc, "orig", None), "__cause__", None)):
        code = getattr(source, "sqlstate", None) or getattr(source, "pgcode", None)
        if code:
            return code
    return None


def classify_db_error(exc: Exception, context: Dict[str, Any]) -> PersistenceError:
    """Map a driver/SQLAlchemy error onto the retryable or terminal taxonomy"""
    if isinstance(exc, (ConnectionError, OSError, TimeoutError)):
        return DatabaseConnectionError("Database connection failed", context=context, original_exception=exc)

    if isinstance(exc, DBAPIError):
        code = _sqlstate(exc)
        context = {**context, "error_code": code}
        if code in TRANSIENT_SERIALIZATION_CODES:
            return SerializationError("Serialization failure", context=context, original_exception=exc)
        if exc.connection_invalidated or code in TRANSIENT_CONNECTION_CODES:
            return DatabaseConnectionError("Database connection lost", context=context, original_exception=exc)
        if code is None and "database is locked" in str(exc.orig):
            return SerializationError("Database is locked", context=context, original_exception=exc)

    return DatabaseError("Snapshot write failed", context=context, original_exception=exc)


def _upsert_factory(dialect_name: str):
    """Dialect insert construct supporting ON CONFLICT, or None"""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert
        return pg_insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert
        return sqlite_insert
    return None


def _scope_value(col: str, item: CatalogItem, segment: Segment) -> Any:
    if col == "segment":
        return Segment(segment).value
    return item.category


def key_values(profile: TableProfile, item: CatalogItem, segment: Segment) -> Dict[str, Any]:
    return {
        col: item.id if col == profile.id_column else _scope_value(col, item, segment)
        for col in profile.key_columns
    }


def scope_values(profile: TableProfile, item: CatalogItem, segment: Segment) -> Dict[str, Any]:
    """game/category/segment columns outside the key, so they never default to NULL"""
    return {col: _scope_value(col, item, segment) for col in profile.non_key_scope_columns}


def stat_values(
    profile: TableProfile,
    stat: Optional[PriceStat],
    currency: str,
    method: str,
    query: Optional[str],
    sample_url: Optional[str]
) -> Dict[str, Any]:
    """
    Values for every value column the table actually has.

    A None stat is a zero-sample heartbeat: count 0, statistics null.
    """
    quantiles = stat.quantile_profile() if stat is not None else None

    def s(attr):
        return getattr(stat, attr) if stat is not None else None

    candidates = {
        "sample_count": stat.sample_count if stat is not None else 0,
        "min_cents": s("min"), "min": s("min"),
        "p25_cents": s("p25"), "p25": s("p25"),
        "median_cents": s("median"), "median": s("median"),
        "p75_cents": s("p75"), "p75": s("p75"),
        "max_cents": s("max"), "max": s("max"),
        "avg_cents": s("avg"), "avg": s("avg"),
        "low": quantiles.low if quantiles else None,
        "high": quantiles.high if quantiles else None,
        "currency": stat.currency if stat is not None else currency,
        "sample_url": sample_url,
        "method": method,
        "basis": method,
        "query": query or "",
        "captured_at": s("captured_at"),
    }
    values = {c: candidates[c] for c in profile.value_columns}
    if "method" in values:
        values.pop("basis", None)
    return values


class PriceStatPersister:
    """
    Persist PriceStats with one current row per key.

    Ensures:
    - Native INSERT ... ON CONFLICT DO UPDATE when a unique constraint backs the key
    - UPDATE, then INSERT on a miss, when it does not (a concurrent writer to
      the same key can slip an extra row in between; accepted)
    - Columns the destination lacks are left out of the statement
    """

    def __init__(
        self,
        engine: AsyncEngine,
        profiler: Optional[TableProfiler] = None,
        retry_policy: Optional[RetryPolicy] = None,
        table_name: Optional[str] = None,
        currency: Optional[str] = None,
        method: str = DEFAULT_METHOD
    ):
        self.engine = engine
        self.profiler = profiler or TableProfiler(engine)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.DB_MAX_RETRIES,
            base_delay=0.2,
            max_delay=5.0,
        )
        self.table_name = table_name or settings.DESTINATION_TABLE
        self.currency = currency or settings.CURRENCY
        self.method = method
        self._upsert = _upsert_factory(engine.dialect.name)

    async def profile(self) -> TableProfile:
        return await self.profiler.get_profile(self.table_name)

    async def persist(
        self,
        item: CatalogItem,
        segment: Segment,
        stat: Optional[PriceStat],
        query: Optional[str] = None,
        sample_url: Optional[str] = None
    ) -> None:
        """
        Write one snapshot, retrying transient database failures.

        Raises:
            SchemaMismatchError: Destination has no usable id column
            DatabaseError: Non-transient failure, or retries exhausted
        """
        profile = await self.profile()
        keys = key_values(profile, item, segment)
        values = {
            **scope_values(profile, item, segment),
            **stat_values(profile, stat, self.currency, self.method, query, sample_url),
        }

        await self.retry_policy.call(
            self._write,
            profile,
            keys,
            values,
            description=f"persist {profile.name} {item.category}/{item.id}/{Segment(segment).value}",
        )

    async def _write(self, profile: TableProfile, keys: Dict[str, Any], values: Dict[str, Any]) -> None:
        use_upsert = profile.has_unique and self._upsert is not None
        context = {
            "operation": "UPSERT" if use_upsert else "UPDATE_OR_INSERT",
            "table_name": profile.name,
            "key": keys,
        }
        try:
            async with self.engine.begin() as conn:
                if use_upsert:
                    await conn.execute(self._upsert_statement(profile, keys, values))
                else:
                    result = await conn.execute(self._update_statement(profile, keys, values))
                    if result.rowcount == 0:
                        await conn.execute(self._insert_statement(profile, keys, values))
        except SQLAlchemyError as e:
            raise classify_db_error(e, context) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_db_error(e, context) from e

    def _touch(self, profile: TableProfile) -> Dict[str, Any]:
        return {c: func.now() for c in profile.touch_columns}

    def _upsert_statement(self, profile: TableProfile, keys, values):
        table = profile.table
        stmt = self._upsert(table).values(**keys, **values, **self._touch(profile))
        set_ = {c: stmt.excluded[c] for c in values}
        set_.update(self._touch(profile))
        if not set_:
            return stmt.on_conflict_do_nothing(index_elements=list(profile.key_columns))
        return stmt.on_conflict_do_update(index_elements=list(profile.key_columns), set_=set_)

    def _update_statement(self, profile: TableProfile, keys, values):
        table = profile.table
        assignments = {**values, **self._touch(profile)}
        if not assignments:
            # Nothing to change; still report a hit so no duplicate gets inserted
            assignments = {profile.id_column: keys[profile.id_column]}
        where = and_(*[table.c[k] == v for k, v in keys.items()])
        return update(table).where(where).values(**assignments)

    def _insert_statement(self, profile: TableProfile, keys, values):
        return insert(profile.table).values(**keys, **values, **self._touch(profile))


async def ensure_destination_table(engine: AsyncEngine) -> None:
    """Create the default price_snapshots table and the run log if they are missing"""
    tables = [PriceSnapshot.__table__, PriceSyncRun.__table__]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables, checkfirst=True)
    logger.info(f"Ensured tables: {', '.join(t.name for t in tables)}")
