from sqlalchemy import Column, String, Integer, DateTime, Text, Index, func
from models.base import Base


class PriceSnapshot(Base):
    """
    Current price statistics for one (card, category, segment).

    Design:
    - Exactly one row per key; every sync overwrites the previous snapshot
    - Amounts are integer minor currency units (cents)
    - low/median/high hold the three-point quantile view of the same sample
    - Nullable stat columns allow zero-sample heartbeat rows
    """
    __tablename__ = "price_snapshots"

    card_id = Column(String(128), primary_key=True)
    category = Column(String(32), primary_key=True)
    segment = Column(String(16), primary_key=True)

    sample_count = Column(Integer, nullable=False, default=0)
    min_cents = Column(Integer, nullable=True)
    p25_cents = Column(Integer, nullable=True)
    median_cents = Column(Integer, nullable=True)
    p75_cents = Column(Integer, nullable=True)
    max_cents = Column(Integer, nullable=True)
    avg_cents = Column(Integer, nullable=True)
    low = Column(Integer, nullable=True)
    high = Column(Integer, nullable=True)

    currency = Column(String(3), nullable=False, default="USD")
    method = Column(String(32), nullable=False, default="sold_listings")
    query = Column(Text, nullable=True)
    sample_url = Column(String(2048), nullable=True)

    captured_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_price_snapshots_category_segment", "category", "segment"),
    )
