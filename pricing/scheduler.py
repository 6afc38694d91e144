import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import settings
from core.database import create_engine
from core.exceptions import PriceSyncException
from pricing.job import run_price_sync

logger = logging.getLogger(__name__)


class PriceSyncScheduler:
    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        category: Optional[str] = None,
        interval_minutes: Optional[int] = None,
        **sync_options
    ):
        self.scheduler = AsyncIOScheduler()
        self.engine = engine or create_engine()
        self.category = category or settings.PRICE_CATEGORY
        self.interval_minutes = interval_minutes or settings.SCHEDULE_INTERVAL_MINUTES
        self.sync_options = sync_options

    async def run_sync_job(self):
        """Job to run one full price sync"""
        logger.info(f"Scheduler: Starting price sync for {self.category}")
        try:
            summary = await run_price_sync(self.engine, category=self.category, **self.sync_options)
            logger.info(
                f"Scheduler: Price sync done - processed={summary.processed} "
                f"saved={summary.saved} missing={summary.missing}"
            )
        except PriceSyncException as e:
            logger.error(f"Scheduler: Price sync failed - {e}", extra={"error_context": e.to_dict()})
        except Exception as e:
            logger.exception(f"Scheduler: Price sync crashed - {e}")

    def start(self, run_now: bool = True):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="price_sync_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **({"next_run_time": datetime.now(timezone.utc)} if run_now else {})
        )
        self.scheduler.start()
        logger.info(f"Price sync scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Price sync scheduler stopped")
