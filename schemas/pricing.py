"""
Pydantic schemas for aggregated price statistics and run results
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict
from datetime import datetime, timezone
from models.base import ItemState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuantileProfile(BaseModel):
    """Three-point view: {p10, p50, p90}, or {min, p50, max} for small samples"""

    low: int
    median: int
    high: int
    sample_count: int


class PriceStat(BaseModel):
    """
    Canonical summary of one segment's sample, in integer minor units.

    Carries p10/p90 alongside the six-point summary so the three-point
    quantile view is derived from the same sample instead of recomputed
    by a different job.
    """

    sample_count: int = Field(..., ge=1)
    min: int
    p10: int
    p25: int
    median: int
    p75: int
    p90: int
    max: int
    avg: int
    currency: str = "USD"
    captured_at: datetime = Field(default_factory=_utcnow)

    @validator("max")
    def check_ordering(cls, v, values):
        """min <= p25 <= median <= p75 <= max, with p10/p90 inside the tails"""
        chain = [values.get(k) for k in ("min", "p10", "p25", "median", "p75", "p90")] + [v]
        if any(x is None for x in chain):
            return v
        if any(a > b for a, b in zip(chain, chain[1:])):
            raise ValueError(f"Percentiles out of order: {chain}")
        return v

    def quantile_profile(self) -> QuantileProfile:
        if self.sample_count >= 10:
            return QuantileProfile(low=self.p10, median=self.median, high=self.p90, sample_count=self.sample_count)
        return QuantileProfile(low=self.min, median=self.median, high=self.max, sample_count=self.sample_count)


class SegmentedPrices(BaseModel):
    """Accepted listing prices bucketed by condition"""

    raw: List[int] = Field(default_factory=list)
    graded: List[int] = Field(default_factory=list)
    rejected: Dict[str, int] = Field(default_factory=dict)
    below_gate: int = 0
    sample_url: Optional[str] = None

    @property
    def accepted(self) -> int:
        return len(self.raw) + len(self.graded)


class ItemOutcome(BaseModel):
    """Terminal state of one catalog item within a run"""

    item_id: str
    category: str
    state: ItemState
    query: Optional[str] = None
    listings: int = 0
    samples: Dict[str, int] = Field(default_factory=dict)
    snapshots_saved: int = 0
    error: Optional[str] = None

    class Config:
        use_enum_values = True


class RunSummary(BaseModel):
    """Aggregate counters the sync job reports"""

    total: int = 0
    processed: int = 0
    saved: int = 0
    missing: int = 0
    skipped: int = 0
    failed: int = 0
    not_started: int = 0
    duration_seconds: float = 0.0
    outcomes: List[ItemOutcome] = Field(default_factory=list)

    def record(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)
        self.processed += 1
        self.saved += outcome.snapshots_saved
        if outcome.state == ItemState.PERSISTED:
            return
        self.missing += 1
        if outcome.state == ItemState.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
