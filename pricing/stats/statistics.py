"""
Summary statistics over integer price samples
"""

import math
from typing import Iterable, List, Optional, Sequence

from schemas.pricing import PriceStat, QuantileProfile


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Linear interpolation at index (n-1)*p over an ascending sequence.

    Returns the exact order statistic when the index is whole, otherwise
    the blend of the floor and ceiling neighbours.
    """
    if not sorted_values:
        raise ValueError("percentile of an empty sample")
    idx = (len(sorted_values) - 1) * p
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return sorted_values[lo]
    return sorted_values[lo] + (sorted_values[hi] - sorted_values[lo]) * (idx - lo)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize(values: Iterable[int], currency: str = "USD") -> Optional[PriceStat]:
    """Six-point summary (plus p10/p90) in minor units; None for an empty sample"""
    s: List[int] = sorted(values)
    if not s:
        return None

    def q(p: float) -> int:
        return round_half_up(percentile(s, p))

    return PriceStat(
        sample_count=len(s),
        min=s[0],
        p10=q(0.10),
        p25=q(0.25),
        median=q(0.50),
        p75=q(0.75),
        p90=q(0.90),
        max=s[-1],
        avg=round_half_up(sum(s) / len(s)),
        currency=currency,
    )


def quantile_profile(values: Iterable[int]) -> Optional[QuantileProfile]:
    """
    Three-point {low, median, high}: p10/p50/p90 from ten samples up,
    min/p50/max below that where tail percentiles are unstable.
    """
    stat = summarize(values)
    return stat.quantile_profile() if stat is not None else None
