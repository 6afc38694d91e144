from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Text, JSON, Index
from datetime import datetime, timezone
import uuid
from models.base import Base, SyncStatus


def _utcnow():
    return datetime.now(timezone.utc)


class PriceSyncRun(Base):
    """
    Tracks metadata for each price sync execution.

    Purpose:
    - Audit trail of all runs
    - Counters the job reports (processed, saved, missing)
    - Error tracking for aborted runs
    """
    __tablename__ = "price_sync_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)

    category = Column(String(32), nullable=False, index=True)
    status = Column(Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Counters
    items_total = Column(Integer, default=0)
    items_processed = Column(Integer, default=0)
    snapshots_saved = Column(Integer, default=0)
    items_missing = Column(Integer, default=0)
    items_skipped = Column(Integer, default=0)
    items_failed = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Configuration snapshot
    config_snapshot = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_price_sync_run_category_started", "category", "started_at"),
    )
