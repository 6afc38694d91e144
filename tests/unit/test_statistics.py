"""
Unit tests for summary statistics
"""

import pytest
from pydantic import ValidationError

from pricing.stats.statistics import percentile, quantile_profile, round_half_up, summarize
from schemas.pricing import PriceStat


class TestPercentile:
    """Test linear interpolation at (n-1)*p"""

    def test_exact_index(self):
        assert percentile([1, 2, 3, 4, 5], 0.25) == 2

    def test_interpolated(self):
        assert percentile([10, 20, 30, 40], 0.5) == pytest.approx(25)

    def test_single_value(self):
        assert percentile([42], 0.9) == 42

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            percentile([], 0.5)


class TestSummarize:
    """Test the six-point summary"""

    def test_summary_values(self):
        stat = summarize([400, 100, 300, 200])

        assert stat.sample_count == 4
        assert stat.min == 100
        assert stat.p10 == 130
        assert stat.p25 == 175
        assert stat.median == 250
        assert stat.p75 == 325
        assert stat.p90 == 370
        assert stat.max == 400
        assert stat.avg == 250
        assert stat.currency == "USD"
        assert stat.captured_at is not None

    def test_half_values_round_up(self):
        stat = summarize([1, 2])
        assert stat.median == 2
        assert stat.avg == 2

    def test_empty_is_none(self):
        assert summarize([]) is None

    def test_currency_passed_through(self):
        assert summarize([100], currency="EUR").currency == "EUR"

    @pytest.mark.parametrize("values", [
        [42],
        [7, 7, 7, 7],
        [1, 2],
        [2, 1],
        [5, 1000, 20, 20, 35, 999, 1],
        [1, 1, 1, 1, 1, 1, 1, 1, 1, 1000000],
        [1000000, 3, 2, 1],
        list(range(100, 0, -7)),
    ])
    def test_ordering_invariant(self, values):
        stat = summarize(values)
        assert stat.min <= stat.p10 <= stat.p25 <= stat.median <= stat.p75 <= stat.p90 <= stat.max
        assert stat.min <= stat.avg <= stat.max
        assert stat.sample_count == len(values)

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestQuantileProfile:
    """Test the three-point view"""

    def test_ten_or_more_uses_tail_percentiles(self):
        profile = quantile_profile([v * 100 for v in range(1, 11)])

        assert profile.low == 190
        assert profile.median == 550
        assert profile.high == 910
        assert profile.sample_count == 10

    def test_small_sample_uses_extremes(self):
        profile = quantile_profile([v * 100 for v in range(1, 10)])

        assert profile.low == 100
        assert profile.median == 500
        assert profile.high == 900

    def test_empty_is_none(self):
        assert quantile_profile([]) is None

    def test_derived_from_price_stat(self):
        stat = summarize([300, 100, 200])
        assert stat.quantile_profile() == quantile_profile([100, 200, 300])


class TestPriceStatValidation:
    """Test the PriceStat invariant"""

    def test_out_of_order_rejected(self):
        with pytest.raises(ValidationError):
            PriceStat(sample_count=2, min=500, p10=100, p25=100, median=100, p75=100, p90=100, max=100, avg=100)

    def test_zero_samples_rejected(self):
        with pytest.raises(ValidationError):
            PriceStat(sample_count=0, min=1, p10=1, p25=1, median=1, p75=1, p90=1, max=1, avg=1)
