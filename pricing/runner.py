"""
Price sync runner - orchestrates query, fetch, score, aggregate and persist.

This module provides per-item pipelines with:
- A bounded worker pool over the catalog
- Failure isolation: an item's error becomes a "missing" outcome
- Fallback queries for items with thin results
- A per-item timeout
- Cooperative stop: no new items start once a stop is requested
- Run bookkeeping in the price_sync_runs table
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.database import create_session_maker
from core.exceptions import FetchError, PriceSyncException
from models.base import ItemState, Segment, SyncStatus
from models.sync_run import PriceSyncRun
from pricing.loaders.persister import PriceStatPersister
from pricing.matching.query_builder import query_variants
from pricing.matching.segmenter import segment_listings
from pricing.sources.base import ListingSource
from pricing.stats.outliers import prune_outliers
from pricing.stats.statistics import summarize
from schemas.catalog import CatalogItem, Listing
from schemas.pricing import ItemOutcome, PriceStat, RunSummary, SegmentedPrices

logger = logging.getLogger(__name__)


def merge_listings(existing: List[Listing], extra: Iterable[Listing]) -> List[Listing]:
    """Append listings not already present (same url, or same title and price)"""
    seen = set()
    for listing in existing:
        seen.add(listing.url or (listing.title, listing.total_price_minor_units))
    merged = list(existing)
    for listing in extra:
        key = listing.url or (listing.title, listing.total_price_minor_units)
        if key in seen:
            continue
        seen.add(key)
        merged.append(listing)
    return merged


def aggregate_segments(
    segmented: SegmentedPrices,
    currency: str = "USD"
) -> Dict[Segment, Optional[PriceStat]]:
    """
    Prune each condition bucket and summarize it.

    ``all`` is the pruned union of the already-pruned raw and graded
    samples, so a graded slab price that survives its own bucket can still
    be trimmed against the raw population.
    """
    raw = prune_outliers(segmented.raw)
    graded = prune_outliers(segmented.graded)
    combined = prune_outliers(raw + graded)
    return {
        Segment.RAW: summarize(raw, currency),
        Segment.GRADED: summarize(graded, currency),
        Segment.ALL: summarize(combined, currency),
    }


class PriceSyncRunner:
    """
    Price sync orchestrator.

    Responsibilities:
    - Run one pipeline per catalog item under a bounded worker pool
    - Walk each item through PENDING → FETCHING → SCORING → AGGREGATING →
      PERSISTED | SKIPPED | FAILED
    - Count processed, saved and missing items
    - Record the run in price_sync_runs
    """

    def __init__(
        self,
        engine: AsyncEngine,
        source: ListingSource,
        persister: Optional[PriceStatPersister] = None,
        concurrency: Optional[int] = None,
        score_gate: Optional[int] = None,
        item_timeout: Optional[float] = None,
        write_empty_heartbeat: Optional[bool] = None,
        fallback_threshold: Optional[int] = None,
        currency: Optional[str] = None,
        record_runs: bool = True
    ):
        self.engine = engine
        self.source = source
        self.persister = persister or PriceStatPersister(engine)
        self.concurrency = max(1, concurrency or settings.WORKER_CONCURRENCY)
        self.score_gate = settings.SCORE_GATE if score_gate is None else score_gate
        self.item_timeout = settings.ITEM_TIMEOUT_SECONDS if item_timeout is None else item_timeout
        self.write_empty_heartbeat = (
            settings.WRITE_EMPTY_HEARTBEAT if write_empty_heartbeat is None else write_empty_heartbeat
        )
        self.fallback_threshold = (
            settings.FALLBACK_SAMPLE_THRESHOLD if fallback_threshold is None else fallback_threshold
        )
        self.currency = currency or settings.CURRENCY
        self.record_runs = record_runs
        self.SessionLocal = create_session_maker(engine)
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        """Stop scheduling new items; in-flight items run to completion"""
        if not self._stop.is_set():
            logger.info("Stop requested; no new items will be started")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # --------------------------------------------------
    # Run
    # --------------------------------------------------

    async def run(self, items: List[CatalogItem], category: str = "all") -> RunSummary:
        """
        Price every item and return the run counters.

        The destination table is profiled before any item is scheduled, so
        a missing table or id column aborts the run up front.

        Raises:
            SchemaMismatchError: Destination table unusable
            DatabaseError: Destination unreachable during setup
        """
        started = time.monotonic()
        summary = RunSummary(total=len(items))
        run = await self._start_run(category, len(items))

        try:
            await self.persister.profile()
        except PriceSyncException as e:
            logger.error(f"Run aborted during setup: {e.message}", extra={"error_context": e.to_dict()})
            await self._finish_run(run, summary, SyncStatus.FAILED, error_message=e.message)
            raise

        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(item: CatalogItem) -> Optional[ItemOutcome]:
            async with semaphore:
                if self.stopping:
                    return None
                return await self.process_with_timeout(item)

        logger.info(f"Pricing {len(items)} items (category={category}, concurrency={self.concurrency})")

        # Record outcomes in completion order
        for next_done in asyncio.as_completed([worker(item) for item in items]):
            outcome = await next_done
            if outcome is not None:
                summary.record(outcome)

        summary.not_started = summary.total - summary.processed
        summary.duration_seconds = round(time.monotonic() - started, 3)

        if summary.missing == 0 and summary.not_started == 0:
            status = SyncStatus.SUCCESS
        elif summary.failed == summary.processed and summary.processed > 0:
            status = SyncStatus.FAILED
        else:
            status = SyncStatus.PARTIAL
        await self._finish_run(run, summary, status)

        logger.info(
            f"Price sync finished: {status.value} - processed={summary.processed} "
            f"saved={summary.saved} missing={summary.missing} "
            f"(skipped={summary.skipped}, failed={summary.failed}, not_started={summary.not_started}) "
            f"in {summary.duration_seconds}s"
        )
        return summary

    # --------------------------------------------------
    # Item pipeline
    # --------------------------------------------------

    async def process_with_timeout(self, item: CatalogItem) -> ItemOutcome:
        """Run one item pipeline; any error or timeout becomes a FAILED outcome"""
        outcome = ItemOutcome(item_id=item.id, category=item.category, state=ItemState.PENDING)
        try:
            if self.item_timeout and self.item_timeout > 0:
                await asyncio.wait_for(self.process_item(item, outcome), timeout=self.item_timeout)
            else:
                await self.process_item(item, outcome)
        except asyncio.TimeoutError:
            outcome.error = f"timed out after {self.item_timeout}s while {ItemState(outcome.state).value}"
            outcome.state = ItemState.FAILED
        except PriceSyncException as e:
            outcome.error = str(e)
            outcome.state = ItemState.FAILED
            logger.debug(f"{item.category}/{item.id} failed", extra={"error_context": e.to_dict()})
        except Exception as e:
            logger.exception(f"Unexpected error pricing {item.category}/{item.id}")
            outcome.error = f"{type(e).__name__}: {e}"
            outcome.state = ItemState.FAILED

        self._log_outcome(outcome)
        return outcome

    async def process_item(self, item: CatalogItem, outcome: ItemOutcome) -> ItemOutcome:
        """
        Fetch, score, aggregate and persist one item.

        Updates ``outcome`` in place so a caller that times the pipeline out
        still knows which state it reached.
        """
        outcome.state = ItemState.FETCHING
        query, listings = await self._fetch(item)
        outcome.query = query
        outcome.listings = len(listings)

        outcome.state = ItemState.SCORING
        segmented = segment_listings(item, listings, score_gate=self.score_gate)

        outcome.state = ItemState.AGGREGATING
        stats = aggregate_segments(segmented, self.currency)
        outcome.samples = {seg.value: (stat.sample_count if stat else 0) for seg, stat in stats.items()}

        written = 0
        for segment, stat in stats.items():
            if stat is None and not self.write_empty_heartbeat:
                continue
            await self.persister.persist(
                item,
                segment,
                stat,
                query=query,
                sample_url=segmented.sample_url if stat is not None else None,
            )
            written += 1
        outcome.snapshots_saved = written

        has_samples = any(stat is not None for stat in stats.values())
        outcome.state = ItemState.PERSISTED if has_samples else ItemState.SKIPPED
        if not has_samples:
            outcome.error = "no samples"
        return outcome

    async def _fetch(self, item: CatalogItem) -> Tuple[str, List[Listing]]:
        """
        Primary query first; broader variants only while results stay under
        the fallback threshold. A failing fallback keeps what was gathered.
        """
        variants = query_variants(item)
        if not variants:
            return "", []

        primary = variants[0]
        listings = await self.source.fetch_listings(primary, item.category)

        for variant in variants[1:]:
            if len(listings) >= self.fallback_threshold or self.stopping:
                break
            try:
                extra = await self.source.fetch_listings(variant, item.category)
            except FetchError as e:
                logger.warning(f"Fallback query '{variant}' failed for {item.category}/{item.id}: {e.message}")
                break
            listings = merge_listings(listings, extra)

        return primary, listings

    def _log_outcome(self, outcome: ItemOutcome) -> None:
        samples = " ".join(f"{k}={v}" for k, v in outcome.samples.items()) or "-"
        line = (
            f"{outcome.category}/{outcome.item_id} {ItemState(outcome.state).value}: listings={outcome.listings} "
            f"samples[{samples}] saved={outcome.snapshots_saved}"
        )
        if outcome.state == ItemState.FAILED:
            logger.warning(f"{line} error={outcome.error}")
        else:
            logger.info(line)

    # --------------------------------------------------
    # Run bookkeeping
    # --------------------------------------------------

    async def _start_run(self, category: str, total: int) -> Optional[PriceSyncRun]:
        if not self.record_runs:
            return None
        run = PriceSyncRun(
            category=category,
            status=SyncStatus.RUNNING,
            items_total=total,
            config_snapshot={
                "concurrency": self.concurrency,
                "score_gate": self.score_gate,
                "item_timeout": self.item_timeout,
                "write_empty_heartbeat": self.write_empty_heartbeat,
                "destination_table": self.persister.table_name,
            },
        )
        async with self.SessionLocal() as session:
            session.add(run)
            await session.commit()
        logger.info(f"Started price sync run {run.run_id}")
        return run

    async def _finish_run(
        self,
        run: Optional[PriceSyncRun],
        summary: RunSummary,
        status: SyncStatus,
        error_message: Optional[str] = None
    ) -> None:
        if run is None:
            return
        run.status = status
        run.completed_at = datetime.now(timezone.utc)
        run.duration_seconds = summary.duration_seconds
        run.items_processed = summary.processed
        run.snapshots_saved = summary.saved
        run.items_missing = summary.missing
        run.items_skipped = summary.skipped
        run.items_failed = summary.failed
        run.error_message = error_message
        async with self.SessionLocal() as session:
            await session.merge(run)
            await session.commit()
