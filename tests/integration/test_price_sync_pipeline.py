"""
Integration tests for the complete price sync pipeline
"""

import asyncio

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select

from core.exceptions import ConfigurationError, NetworkError, SchemaMismatchError
from core.retry import RetryPolicy
from models.base import ItemState, Segment, SyncStatus
from models.price_snapshot import PriceSnapshot
from models.sync_run import PriceSyncRun
from pricing.job import run_price_sync
from pricing.loaders.persister import PriceStatPersister
from pricing.runner import PriceSyncRunner, aggregate_segments, merge_listings
from pricing.sources.base import ListingSource
from schemas.catalog import CatalogItem, Listing
from schemas.pricing import SegmentedPrices


class FakeSource(ListingSource):
    """Returns canned listings per item name; records every query"""

    def __init__(self, responses=None, default=None, delay=0.0, on_fetch=None):
        self.responses = responses or {}
        self.default = default or []
        self.delay = delay
        self.on_fetch = on_fetch
        self.queries = []

    async def fetch_listings(self, query, category):
        self.queries.append(query)
        if self.on_fetch:
            self.on_fetch(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        for needle, response in self.responses.items():
            if needle in query:
                if isinstance(response, Exception):
                    raise response
                return list(response)
        return list(self.default)


def make_runner(engine, source, **kwargs):
    kwargs.setdefault("concurrency", 2)
    kwargs.setdefault("fallback_threshold", 0)
    kwargs.setdefault("write_empty_heartbeat", False)
    kwargs.setdefault("item_timeout", 5.0)
    persister = PriceStatPersister(
        engine,
        table_name=kwargs.pop("table_name", "price_snapshots"),
        retry_policy=RetryPolicy(max_attempts=5, jitter=0, sleep=AsyncMock()),
    )
    return PriceSyncRunner(engine, source, persister=persister, **kwargs)


async def snapshot_rows(db_session):
    result = await db_session.execute(
        select(PriceSnapshot).order_by(PriceSnapshot.card_id, PriceSnapshot.segment)
    )
    return result.scalars().all()


class TestPriceSyncPipeline:
    """End-to-end: query → fetch → score → aggregate → persist"""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, test_engine, db_session, charizard, charizard_listings):
        source = FakeSource(responses={"Charizard": charizard_listings})
        runner = make_runner(test_engine, source)

        summary = await runner.run([charizard], category="pokemon")

        assert summary.processed == 1
        assert summary.saved == 3
        assert summary.missing == 0
        assert source.queries == ["Base Set Charizard #4 Pokemon TCG"]

        outcome = summary.outcomes[0]
        assert outcome.state == ItemState.PERSISTED
        assert outcome.listings == 6
        assert outcome.samples == {"raw": 2, "graded": 1, "all": 3}

        rows = {r.segment: r for r in await snapshot_rows(db_session)}
        assert set(rows) == {"raw", "graded", "all"}
        assert rows["raw"].median_cents == 31000
        assert rows["graded"].median_cents == 250000
        assert rows["all"].sample_count == 3
        assert rows["all"].max_cents == 250000
        assert rows["raw"].query == "Base Set Charizard #4 Pokemon TCG"
        assert rows["raw"].sample_url == "https://market.example.com/itm/1"

    @pytest.mark.asyncio
    async def test_rerun_overwrites_snapshots(self, test_engine, db_session, charizard, charizard_listings):
        await make_runner(test_engine, FakeSource(default=charizard_listings)).run([charizard])
        cheaper = [l.model_copy(update={"total_price_minor_units": 1000}) for l in charizard_listings]
        await make_runner(test_engine, FakeSource(default=cheaper)).run([charizard])

        rows = await snapshot_rows(db_session)
        assert len(rows) == 3
        assert all(r.max_cents == 1000 for r in rows)

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, test_engine, db_session, charizard, jordan_rookie, charizard_listings):
        source = FakeSource(responses={
            "Charizard": charizard_listings,
            "Jordan": NetworkError("upstream down"),
        })
        runner = make_runner(test_engine, source)

        summary = await runner.run([jordan_rookie, charizard])

        assert summary.processed == 2
        assert summary.missing == 1
        assert summary.failed == 1
        assert summary.saved == 3
        failed = next(o for o in summary.outcomes if o.item_id == jordan_rookie.id)
        assert failed.state == ItemState.FAILED
        assert "upstream down" in failed.error
        assert {r.card_id for r in await snapshot_rows(db_session)} == {charizard.id}

    @pytest.mark.asyncio
    async def test_no_samples_is_skipped(self, test_engine, db_session, charizard):
        source = FakeSource(default=[Listing(title="Pikachu Jungle", total_price_minor_units=500)])
        runner = make_runner(test_engine, source)

        summary = await runner.run([charizard])

        assert summary.skipped == 1
        assert summary.missing == 1
        assert summary.saved == 0
        assert summary.outcomes[0].state == ItemState.SKIPPED
        assert await snapshot_rows(db_session) == []

    @pytest.mark.asyncio
    async def test_zero_sample_heartbeat(self, test_engine, db_session, charizard):
        runner = make_runner(test_engine, FakeSource(), write_empty_heartbeat=True)

        summary = await runner.run([charizard])

        assert summary.outcomes[0].state == ItemState.SKIPPED
        assert summary.saved == 3
        rows = await snapshot_rows(db_session)
        assert [r.sample_count for r in rows] == [0, 0, 0]
        assert all(r.median_cents is None for r in rows)

    @pytest.mark.asyncio
    async def test_fallback_queries_when_results_are_thin(self, test_engine, charizard, charizard_listings):
        source = FakeSource(
            responses={"Base Set Charizard #4": charizard_listings[:1]},
            default=charizard_listings,
        )
        runner = make_runner(test_engine, source, fallback_threshold=6)

        summary = await runner.run([charizard])

        assert source.queries[0] == "Base Set Charizard #4 Pokemon TCG"
        assert len(source.queries) == 2
        assert summary.outcomes[0].listings == 6

    @pytest.mark.asyncio
    async def test_item_timeout(self, test_engine, charizard):
        runner = make_runner(test_engine, FakeSource(delay=1.0), item_timeout=0.05)

        summary = await runner.run([charizard])

        outcome = summary.outcomes[0]
        assert outcome.state == ItemState.FAILED
        assert "timed out" in outcome.error
        assert "fetching" in outcome.error

    @pytest.mark.asyncio
    async def test_request_stop_halts_scheduling(self, test_engine, charizard_listings):
        items = [
            CatalogItem(id=f"base1-{n}", category="pokemon", name="Charizard", set_name="Base Set", number=str(n))
            for n in (4, 5, 6)
        ]
        runner = None

        def stop_after_first(query):
            runner.request_stop()

        runner = make_runner(test_engine, FakeSource(default=charizard_listings, on_fetch=stop_after_first),
                             concurrency=1)

        summary = await runner.run(items)

        assert summary.processed == 1
        assert summary.not_started == 2

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, test_engine, charizard_listings):
        in_flight = 0
        peak = 0

        class CountingSource(FakeSource):
            async def fetch_listings(self, query, category):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return list(charizard_listings)

        items = [
            CatalogItem(id=f"base1-{n}", category="pokemon", name="Charizard", set_name="Base Set", number="4")
            for n in range(6)
        ]
        summary = await make_runner(test_engine, CountingSource(), concurrency=2).run(items)

        assert summary.processed == 6
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_run_is_recorded(self, test_engine, db_session, charizard, jordan_rookie, charizard_listings):
        source = FakeSource(responses={"Charizard": charizard_listings, "Jordan": NetworkError("down")})

        await make_runner(test_engine, source).run([charizard, jordan_rookie], category="all")

        run = (await db_session.execute(select(PriceSyncRun))).scalar_one()
        assert run.status == SyncStatus.PARTIAL
        assert run.items_total == 2
        assert run.items_processed == 2
        assert run.items_missing == 1
        assert run.snapshots_saved == 3
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_unusable_destination_aborts_before_scheduling(self, test_engine, db_session, charizard):
        source = FakeSource()
        runner = make_runner(test_engine, source, table_name="no_such_table")

        with pytest.raises(SchemaMismatchError):
            await runner.run([charizard])

        assert source.queries == []
        run = (await db_session.execute(select(PriceSyncRun))).scalar_one()
        assert run.status == SyncStatus.FAILED


class TestRunPriceSync:
    """Test the job entry point"""

    @pytest.mark.asyncio
    async def test_unknown_category_is_configuration_error(self, test_engine):
        with pytest.raises(ConfigurationError):
            await run_price_sync(test_engine, category="coins", source=FakeSource())

    @pytest.mark.asyncio
    async def test_missing_listing_api_url(self, test_engine, monkeypatch):
        monkeypatch.setattr("pricing.job.settings.LISTING_API_URL", None)

        with pytest.raises(ConfigurationError):
            await run_price_sync(test_engine, category="all")

    @pytest.mark.asyncio
    async def test_empty_catalog(self, test_engine):
        summary = await run_price_sync(test_engine, category="all", source=FakeSource())

        assert summary.total == 0
        assert summary.processed == 0


def test_aggregate_segments_all_is_pruned_union():
    segmented = SegmentedPrices(raw=[100, 100, 105, 110, 95, 90], graded=[98, 102, 99, 10000])

    stats = aggregate_segments(segmented)

    assert stats[Segment.RAW].sample_count == 6
    assert stats[Segment.ALL].sample_count == 9
    assert stats[Segment.ALL].max == 110


def test_merge_listings_dedupes_by_url_then_title_and_price():
    a = Listing(title="A", total_price_minor_units=100, url="https://m/1")
    b = Listing(title="B", total_price_minor_units=200)
    merged = merge_listings([a, b], [
        Listing(title="A again", total_price_minor_units=999, url="https://m/1"),
        Listing(title="B", total_price_minor_units=200),
        Listing(title="C", total_price_minor_units=300),
    ])
    assert [l.title for l in merged] == ["A", "B", "C"]
