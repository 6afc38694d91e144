"""
Two-stage robust outlier trimming for price samples
"""

from typing import Iterable, List

from pricing.stats.statistics import percentile

MIN_SAMPLES_TO_PRUNE = 6
IQR_FACTOR = 1.5
MAD_FACTOR = 5


def iqr_bounds(sorted_values: List[int]):
    q1 = percentile(sorted_values, 0.25)
    q3 = percentile(sorted_values, 0.75)
    iqr = q3 - q1
    return q1 - IQR_FACTOR * iqr, q3 + IQR_FACTOR * iqr


def prune_outliers(values: Iterable[int]) -> List[int]:
    """
    Drop extreme prices from a sample and return it sorted ascending.

    Fewer than six values are returned sorted and untouched. Otherwise an
    IQR fence runs first; if at least six values survive, a MAD filter
    (5 x MAD around the median, MAD floored at 1) runs on the survivors.
    A non-empty input never produces an empty result: an emptied stage
    falls back to the previous stage's output.
    """
    ordered = sorted(values)
    if len(ordered) < MIN_SAMPLES_TO_PRUNE:
        return ordered

    lo, hi = iqr_bounds(ordered)
    stage1 = [v for v in ordered if lo <= v <= hi]
    if not stage1:
        return ordered

    if len(stage1) < MIN_SAMPLES_TO_PRUNE:
        return stage1

    med = percentile(stage1, 0.5)
    mad = percentile(sorted(abs(v - med) for v in stage1), 0.5) or 1
    stage2 = [v for v in stage1 if abs(v - med) <= MAD_FACTOR * mad]
    return stage2 or stage1
