"""
Script to run the price sync once, or on a schedule
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine
from core.exceptions import PriceSyncException
from core.logging import setup_logging
from pricing.job import build_listing_source, run_price_sync
from pricing.scheduler import PriceSyncScheduler

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Price catalog items from marketplace listings")
    parser.add_argument("--category", default=settings.PRICE_CATEGORY,
                        help="sports, pokemon, ygo, mtg or all (default: %(default)s)")
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of items to price")
    parser.add_argument("--concurrency", type=int, default=None,
                        help=f"Worker pool width (default: {settings.WORKER_CONCURRENCY})")
    parser.add_argument("--since", type=int, default=None, dest="since_year", help="Only items from this year on")
    parser.add_argument("--until", type=int, default=None, dest="until_year", help="Only items up to this year")
    parser.add_argument("--schedule", action="store_true",
                        help=f"Keep running every {settings.SCHEDULE_INTERVAL_MINUTES} minutes")
    return parser.parse_args(argv)


async def run_once(args: argparse.Namespace) -> int:
    engine = create_engine()
    try:
        summary = await run_price_sync(
            engine,
            category=args.category,
            limit=args.limit,
            concurrency=args.concurrency,
            since_year=args.since_year,
            until_year=args.until_year,
        )
        logger.info(
            f"Processed={summary.processed} Saved={summary.saved} Missing={summary.missing}"
        )
        return 0
    except PriceSyncException as e:
        logger.error(f"Price sync aborted: {e}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()


async def run_scheduled(args: argparse.Namespace) -> int:
    # Fail fast on configuration before the first tick
    try:
        await build_listing_source().close()
    except PriceSyncException as e:
        logger.error(f"Price sync aborted: {e}")
        return 1

    scheduler = PriceSyncScheduler(
        category=args.category,
        limit=args.limit,
        concurrency=args.concurrency,
        since_year=args.since_year,
        until_year=args.until_year,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    scheduler.start()
    try:
        await stop.wait()
    finally:
        scheduler.stop()
        await scheduler.engine.dispose()
    return 0


def main(argv=None) -> int:
    setup_logging()
    args = parse_args(argv)
    if args.schedule:
        return asyncio.run(run_scheduled(args))
    return asyncio.run(run_once(args))


if __name__ == "__main__":
    sys.exit(main())
